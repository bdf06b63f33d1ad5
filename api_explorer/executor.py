"""Executor - Composes, sends and normalizes one request at a time.

The RequestExecutor owns an explicit lifecycle per instance:

    idle -> sending -> succeeded | failed -> idle

and converts every outcome (invalid body, transport failure, any HTTP
status) into exactly one ResponseRecord. No composition or transport error
escapes execute(), and notifier errors are logged and dropped.
"""

from __future__ import annotations

import logging
from typing import Mapping, Protocol

from api_explorer.composer import DEFAULT_BASE_URL, ComposerError, compose_request
from api_explorer.models import (
    EndpointDescriptor,
    ExecutionState,
    Notification,
    ResponseRecord,
)
from api_explorer.transport import Transport, TransportFailure


logger = logging.getLogger(__name__)


class ExecutorError(Exception):
    """Base class for executor errors."""


class ExecutionInProgress(ExecutorError):
    """Raised when execute() is called while a request is already in flight."""


class Notifier(Protocol):
    """Observer told about each completed execution. Not needed for correctness."""

    def notify(self, notification: Notification) -> None:
        ...


def notification_for(record: ResponseRecord) -> Notification:
    """Summarize a record the way a toast would."""
    if record.has_status:
        return Notification(
            success=not record.is_error,
            status_code=record.status_code,
            message=f"Status: {record.status_code}",
        )
    return Notification(success=False, message=record.body_text)


class RequestExecutor:
    """Executes requests for a single interactive instance.

    Usage:
        executor = RequestExecutor(transport)
        record = await executor.execute(descriptor, bindings, headers, body_text)

    At most one execution may be in flight; distinct executors share nothing
    except, optionally, the transport.
    """

    def __init__(
        self,
        transport: Transport,
        base_url: str = DEFAULT_BASE_URL,
        notifier: Notifier | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            transport: Transport used for the single outbound call.
            base_url: Origin prefixed onto every descriptor path.
            notifier: Optional observer informed after every execution.
        """
        self._transport = transport
        self._base_url = base_url
        self._notifier = notifier
        self._state = ExecutionState.IDLE

    @property
    def state(self) -> ExecutionState:
        return self._state

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def is_sending(self) -> bool:
        return self._state == ExecutionState.SENDING

    async def execute(
        self,
        descriptor: EndpointDescriptor,
        bindings: Mapping[str, str],
        headers: Mapping[str, str],
        body_text: str,
    ) -> ResponseRecord:
        """Run the full pipeline and return exactly one record.

        Returns:
            A record for the completed exchange (any status), or an error
            record with no status for an invalid body or transport failure.

        Raises:
            ExecutionInProgress: If this executor is already sending.
        """
        if self.is_sending:
            raise ExecutionInProgress("a request is already in flight for this instance")

        self._state = ExecutionState.SENDING

        try:
            record = await self._run(descriptor, bindings, headers, body_text)
        except BaseException:
            # Cancelled, or the transport raised something other than TransportFailure
            self._state = ExecutionState.IDLE
            raise

        self._state = ExecutionState.SUCCEEDED if record.has_status else ExecutionState.FAILED

        if self._notifier is not None:
            try:
                self._notifier.notify(notification_for(record))
            except Exception:
                logger.exception("Notifier failed for %s %s", descriptor.method.value, descriptor.path)

        return record

    async def _run(
        self,
        descriptor: EndpointDescriptor,
        bindings: Mapping[str, str],
        headers: Mapping[str, str],
        body_text: str,
    ) -> ResponseRecord:
        try:
            request = compose_request(descriptor, bindings, headers, body_text, self._base_url)
        except ComposerError as e:
            logger.warning("Not sending %s %s: %s", descriptor.method.value, descriptor.path, e)
            return ResponseRecord.failure(str(e))

        logger.debug("Composed %s %s", request.method.value, request.url)

        try:
            response = await self._transport.send(
                request.url, request.method.value, request.headers, request.body
            )
        except TransportFailure as e:
            logger.warning("%s %s failed: %s", request.method.value, request.url, e)
            return ResponseRecord.failure(str(e))

        logger.info(
            "%s %s -> %d %s",
            request.method.value,
            request.url,
            response.status_code,
            response.status_text,
        )
        return ResponseRecord.from_transport(response)

    def reset(self) -> None:
        """Return a finished executor to idle.

        Raises:
            ExecutionInProgress: If a request is in flight.
        """
        if self.is_sending:
            raise ExecutionInProgress("cannot reset while a request is in flight")
        self._state = ExecutionState.IDLE
