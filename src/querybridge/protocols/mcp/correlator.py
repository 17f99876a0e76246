"""RequestCorrelator: matches JSON-RPC responses to requests by id.

Any number of requests may be in flight at once; responses are matched
purely by ``id`` and may arrive in any order.  Each request carries its
own timeout, and a response that arrives after its request timed out is
dropped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from querybridge.protocols.errors import ProtocolError, RemoteToolError, RequestTimeoutError
from querybridge.protocols.mcp.models import JsonRpcRequest, JsonRpcResponse

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0
UNKNOWN_ERROR = "Unknown error"

SendFn = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass
class PendingRequest:
    """One in-flight request waiting for its response."""

    id: int
    method: str
    future: asyncio.Future[Any]
    created_at: float = field(default_factory=time.monotonic)
    timer: asyncio.TimerHandle | None = None


class RequestCorrelator:
    """Owns the request id counter and the pending-request table."""

    def __init__(self, send: SendFn, *, request_timeout: float = DEFAULT_REQUEST_TIMEOUT) -> None:
        self._send = send
        self._request_timeout = request_timeout
        self._next_id = 0
        self._pending: dict[int, PendingRequest] = {}

    @property
    def request_timeout(self) -> float:
        return self._request_timeout

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def next_id(self) -> int:
        """Return the next request id (1, 2, 3, ...)."""
        self._next_id += 1
        return self._next_id

    def build_request(self, method: str, params: dict[str, Any] | None = None) -> JsonRpcRequest:
        """Create a request stamped with a fresh id."""
        return JsonRpcRequest(id=self.next_id(), method=method, params=params)

    async def send_request(self, request: JsonRpcRequest) -> Any:
        """Send *request* and wait for the ``result`` of its response.

        Raises:
            RemoteToolError: The response carried an ``error`` object.
            RequestTimeoutError: No matching response within the timeout.
            ValueError: A request with the same id is already pending.
        """
        if request.id in self._pending:
            msg = f"Request id {request.id} is already pending"
            raise ValueError(msg)

        loop = asyncio.get_running_loop()
        entry = PendingRequest(id=request.id, method=request.method, future=loop.create_future())
        entry.timer = loop.call_later(self._request_timeout, self._expire, request.id)
        self._pending[request.id] = entry

        try:
            await self._send(request.model_dump(exclude_none=True))
            return await entry.future
        finally:
            self._discard(request.id, entry)

    def handle_message(self, message: dict[str, Any]) -> None:
        """Route one incoming message to the request it answers."""
        if "method" in message:
            # Server-initiated request or notification; ids are in the
            # server's own namespace.
            logger.debug("Ignoring server message %s", message.get("method"))
            return

        msg_id = message.get("id")
        entry = self._pending.pop(msg_id, None) if isinstance(msg_id, int) else None
        if entry is None:
            logger.debug("Discarding response with no pending request: id=%r", msg_id)
            return
        if entry.timer is not None:
            entry.timer.cancel()
        if entry.future.done():
            return

        try:
            response = JsonRpcResponse.model_validate(message)
        except ValidationError as exc:
            entry.future.set_exception(
                ProtocolError(f"Malformed response to {entry.method}: {exc}")
            )
            return

        if response.error is not None:
            error = response.error
            entry.future.set_exception(
                RemoteToolError(
                    entry.method,
                    error.message or UNKNOWN_ERROR,
                    code=error.code,
                    data=error.data,
                )
            )
        else:
            entry.future.set_result(response.result)

    def fail_all(self, exc: Exception) -> None:
        """Reject every pending request with *exc*."""
        pending, self._pending = self._pending, {}
        for entry in pending.values():
            if entry.timer is not None:
                entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_exception(exc)
        if pending:
            logger.debug("Failed %d pending request(s): %s", len(pending), exc)

    def _expire(self, request_id: int) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is None or entry.future.done():
            return
        logger.warning("Request %d (%s) timed out after %ss", request_id, entry.method, self._request_timeout)
        entry.future.set_exception(RequestTimeoutError(entry.method, self._request_timeout))

    def _discard(self, request_id: int, entry: PendingRequest) -> None:
        if entry.timer is not None:
            entry.timer.cancel()
        if self._pending.get(request_id) is entry:
            del self._pending[request_id]
