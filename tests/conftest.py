"""Pytest configuration and fixtures for api-explorer tests.

This file provides:
- Model factories (make_descriptor, make_transport_response)
- FakeTransport / EchoTransport: in-process transports that record calls
- PortReservation + SandboxServer: subprocess management for the sandbox API
- Fixtures: bundled catalog, sandbox server
"""

from __future__ import annotations

import asyncio
import json
import socket
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generator, Mapping

import pytest

from api_explorer.config_loader import load_catalog
from api_explorer.models import Catalog, EndpointDescriptor, ParameterSpec, TransportResponse

# Project root for fixture paths
PROJECT_ROOT = Path(__file__).parent.parent
SANDBOX_SERVER_MODULE = "tests.integration.sandbox_server"


def make_descriptor(
    method: str = "GET",
    path: str = "/api/Client/{id}",
    parameters: list[tuple[str, bool]] | None = None,
    example_body: str | None = None,
    description: str = "",
) -> EndpointDescriptor:
    """Create an EndpointDescriptor for testing.

    parameters is a list of (name, required) pairs.
    """
    return EndpointDescriptor(
        method=method,
        path=path,
        description=description,
        parameters=tuple(
            ParameterSpec(name=name, required=required) for name, required in parameters or []
        ),
        example_body=example_body,
    )


def make_transport_response(
    status_code: int = 200,
    status_text: str = "OK",
    body_text: str = "",
    elapsed_ms: float | None = 12.5,
) -> TransportResponse:
    return TransportResponse(
        status_code=status_code,
        status_text=status_text,
        body_text=body_text,
        elapsed_ms=elapsed_ms,
    )


@dataclass
class SentRequest:
    """One call observed by a fake transport."""

    url: str
    method: str
    headers: dict[str, str]
    body: str | None


class FakeTransport:
    """Transport that records calls and returns a canned response or raises.

    Usage:
        transport = FakeTransport(response=make_transport_response(body_text='{"a":1}'))
        transport = FakeTransport(error=TransportFailure("network down"))
    """

    def __init__(
        self,
        response: TransportResponse | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.response = response or make_transport_response()
        self.error = error
        self.delay = delay
        self.calls: list[SentRequest] = []

    async def send(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        body: str | None = None,
    ) -> TransportResponse:
        self.calls.append(SentRequest(url=url, method=method, headers=dict(headers), body=body))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


class EchoTransport:
    """Transport that answers with a JSON echo of what it was sent.

    delays maps a URL substring to a sleep in seconds, so tests can force
    responses to complete out of order.
    """

    def __init__(self, delays: dict[str, float] | None = None) -> None:
        self.delays = delays or {}
        self.calls: list[SentRequest] = []

    async def send(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        body: str | None = None,
    ) -> TransportResponse:
        self.calls.append(SentRequest(url=url, method=method, headers=dict(headers), body=body))
        for fragment, delay in self.delays.items():
            if fragment in url:
                await asyncio.sleep(delay)
        echo: dict[str, Any] = {"url": url, "method": method, "body": body}
        return make_transport_response(body_text=json.dumps(echo))


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    The socket stays bound until release(), just before the server binds.
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(("127.0.0.1", 0))  # Port 0 = OS assigns ephemeral port
        self._port = self._socket.getsockname()[1]
        self._released = False

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> int:
        """Release the socket and return the port for server use.

        Safe to call multiple times - subsequent calls are no-ops.
        """
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port

    def __enter__(self) -> PortReservation:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()


def find_free_port() -> int:
    """Find an available port on localhost (racy; fine for 'nothing listens here' tests)."""
    with PortReservation() as reservation:
        return reservation.port


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except (ConnectionRefusedError, socket.timeout, OSError):
            time.sleep(0.1)
    return False


class SandboxServer:
    """Manages the sandbox API server subprocess for integration tests.

    Runs tests/integration/sandbox_server.py, a small FastAPI app shaped like
    the Facturama sandbox (clients, products, echo and status endpoints).
    """

    def __init__(self, port: int | PortReservation) -> None:
        if isinstance(port, PortReservation):
            self._reservation = port
            self.port = port.port
        else:
            self._reservation = None
            self.port = port
        self.host = "127.0.0.1"
        self.base_url = f"http://{self.host}:{self.port}"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        if self._reservation:
            self._reservation.release()

        self._process = subprocess.Popen(
            [
                sys.executable, "-m", SANDBOX_SERVER_MODULE,
                "--host", self.host,
                "--port", str(self.port),
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )

        if not wait_for_server_ready(self.host, self.port):
            stderr = ""
            if self._process and self._process.stderr:
                stderr = self._process.stderr.read().decode(errors="replace")
            self.stop()
            raise RuntimeError(
                f"SandboxServer failed to start on port {self.port}. "
                f"stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the server with SIGTERM, escalating to SIGKILL after 5s."""
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                try:
                    self._process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    pass  # Unkillable; nothing more to do
            self._process = None

    def __enter__(self) -> SandboxServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def bundled_catalog() -> Catalog:
    """The Facturama sandbox catalog shipped with the package."""
    return load_catalog()


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture(scope="session")
def sandbox_server() -> Generator[SandboxServer, None, None]:
    """Start the sandbox API once per test session."""
    with SandboxServer(PortReservation()) as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Automatically apply markers based on test location.

    Enables running subsets via:
        pytest -m integration  # only integration tests
        pytest -m unit         # only unit tests
    """
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
