"""Endpoint Session - One interactive instance for one catalog entry.

A session owns everything a user edits for an endpoint (parameter values,
headers, body text) together with its own executor and the last record.
Sessions never share mutable state, so any number may execute concurrently.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from api_explorer.binder import missing_required
from api_explorer.composer import DEFAULT_BASE_URL, compose_url, default_headers
from api_explorer.executor import Notifier, RequestExecutor
from api_explorer.formatter import format_record
from api_explorer.models import CatalogEntry, EndpointDescriptor, ExecutionState, ResponseRecord
from api_explorer.transport import Transport


class EndpointSession:
    """Editable request state plus lifecycle for a single endpoint.

    Usage:
        session = EndpointSession(entry.endpoint, transport)
        session.set_parameter("id", "abc123")
        record = await session.send()
        print(session.formatted_response())

    Inputs may be edited while a send is in flight. The response is still
    stored when it arrives (last write wins); last_record_is_stale reports
    whether the inputs changed after that send started.
    """

    def __init__(
        self,
        descriptor: EndpointDescriptor,
        transport: Transport,
        base_url: str = DEFAULT_BASE_URL,
        headers: Mapping[str, str] | None = None,
        notifier: Notifier | None = None,
        title: str | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            descriptor: Endpoint this session edits and sends.
            transport: Transport for outbound calls (may be shared).
            base_url: Origin prefixed onto the path.
            headers: Headers merged over the default header set.
            notifier: Optional observer for completed executions.
            title: Display title, defaults to "METHOD path".
        """
        self._descriptor = descriptor
        self._base_url = base_url
        self._header_overrides = dict(headers or {})
        self._executor = RequestExecutor(transport, base_url=base_url, notifier=notifier)
        self.title = title or f"{descriptor.method.value} {descriptor.path}"

        self._bindings: dict[str, str] = {}
        self._headers: dict[str, str] = {}
        self._body_text = ""
        self.last_record: ResponseRecord | None = None

        # Bumped on every input edit; compared against the generation a send started with
        self._generation = 0
        self._record_generation: int | None = None

        self.reset()

    @classmethod
    def for_entry(
        cls,
        entry: CatalogEntry,
        transport: Transport,
        base_url: str = DEFAULT_BASE_URL,
        headers: Mapping[str, str] | None = None,
        notifier: Notifier | None = None,
    ) -> "EndpointSession":
        """Build a session for a catalog entry, titled after it."""
        return cls(
            entry.endpoint,
            transport,
            base_url=base_url,
            headers=headers,
            notifier=notifier,
            title=entry.title,
        )

    @property
    def descriptor(self) -> EndpointDescriptor:
        return self._descriptor

    @property
    def bindings(self) -> Mapping[str, str]:
        """Read-only view of parameter values; edit with set_parameter."""
        return MappingProxyType(self._bindings)

    @property
    def headers(self) -> Mapping[str, str]:
        """Read-only view of the header set; edit with set_header."""
        return MappingProxyType(self._headers)

    @property
    def body_text(self) -> str:
        return self._body_text

    @property
    def state(self) -> ExecutionState:
        return self._executor.state

    @property
    def is_sending(self) -> bool:
        return self._executor.is_sending

    @property
    def last_record_is_stale(self) -> bool:
        """True if inputs were edited after the send that produced last_record started."""
        return self._record_generation is not None and self._record_generation != self._generation

    def reset(self) -> None:
        """Restore seeded inputs and clear the last record.

        Raises:
            ExecutionInProgress: If a request is in flight.
        """
        self._executor.reset()
        self._bindings = {}
        self._headers = {**default_headers(), **self._header_overrides}
        self._body_text = self._descriptor.example_body or ""
        self.last_record = None
        self._record_generation = None
        self._generation += 1

    def set_parameter(self, name: str, value: str) -> None:
        self._bindings[name] = value
        self._generation += 1

    def set_header(self, name: str, value: str) -> None:
        self._headers[name] = value
        self._generation += 1

    def set_body(self, text: str) -> None:
        self._body_text = text
        self._generation += 1

    def preview_url(self) -> str:
        """URL the next send would use."""
        return compose_url(self._descriptor, self._bindings, self._base_url)

    def missing_required(self) -> list[str]:
        """Required parameters still blank (advisory, does not block send)."""
        return missing_required(self._descriptor, self._bindings)

    async def send(self) -> ResponseRecord:
        """Execute with the current inputs and store the resulting record.

        Raises:
            ExecutionInProgress: If this session is already sending.
        """
        started_generation = self._generation
        # Snapshot inputs so edits during the await cannot leak into this request
        record = await self._executor.execute(
            self._descriptor,
            dict(self._bindings),
            dict(self._headers),
            self._body_text,
        )
        self.last_record = record
        self._record_generation = started_generation
        return record

    def formatted_response(self) -> str:
        """Display text for the last record, or '' if nothing was sent yet."""
        if self.last_record is None:
            return ""
        return format_record(self.last_record)
