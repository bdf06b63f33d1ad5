"""Transport - The single network seam of the explorer.

The executor depends only on the Transport protocol: send a resolved request,
get back status, reason phrase and body text, or a TransportFailure. The
default implementation wraps httpx.AsyncClient.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping, Protocol

import httpx

from api_explorer.models import TransportResponse


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class TransportFailure(Exception):
    """Raised when no HTTP response was obtained (connection, DNS, TLS, timeout)."""


class Transport(Protocol):
    """Narrow async contract the executor sends through."""

    async def send(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        body: str | None = None,
    ) -> TransportResponse:
        ...


class HttpxTransport:
    """Transport backed by httpx.AsyncClient.

    Usage:
        async with HttpxTransport(timeout=10.0) as transport:
            response = await transport.send(url, "GET", headers)

    A client passed in by the caller is used as-is and left open on close;
    otherwise the transport creates and owns its client. One transport may
    be shared by any number of sessions.
    Redirects are followed; the record describes the final response.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def send(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        body: str | None = None,
    ) -> TransportResponse:
        """Send one request and return the raw exchange.

        Raises:
            TransportFailure: If the request could not complete.
        """
        content = body.encode("utf-8") if body is not None else None

        try:
            start_time = time.perf_counter()
            response = await self._client.request(
                method=method,
                url=url,
                headers=dict(headers),
                content=content,
                timeout=self._timeout,
                follow_redirects=True,
            )
            elapsed_ms = (time.perf_counter() - start_time) * 1000
        except httpx.TimeoutException as e:
            raise TransportFailure(f"request timeout: {e}") from e
        except httpx.ConnectError as e:
            raise TransportFailure(f"connection error: {e}") from e
        except httpx.RequestError as e:
            raise TransportFailure(f"request error: {e}") from e
        except httpx.InvalidURL as e:
            raise TransportFailure(f"invalid URL: {e}") from e
        except UnicodeEncodeError as e:
            # httpx encodes header values as ASCII; pasted credentials are the usual culprit.
            raise TransportFailure(
                f"encoding error: non-ASCII character {e.object[e.start:e.end]!r} "
                "in a header or URL. HTTP requires ASCII for these fields."
            ) from e

        logger.debug("%s %s -> %d in %.1fms", method, url, response.status_code, elapsed_ms)

        return TransportResponse(
            status_code=response.status_code,
            status_text=response.reason_phrase,
            body_text=response.text,
            elapsed_ms=elapsed_ms,
        )
