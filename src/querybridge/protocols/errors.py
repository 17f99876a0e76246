"""Shared error types for the MCP protocol layer."""

from __future__ import annotations

from typing import Any


class ProtocolError(Exception):
    """Base error for all protocol-layer failures."""


class ProcessSpawnError(ProtocolError):
    """The server command could not be started at all."""

    def __init__(self, command: str, detail: str = "") -> None:
        self.command = command
        self.detail = detail
        super().__init__(f"Failed to start MCP server: {command}" + (f" ({detail})" if detail else ""))


class StartupTimeoutError(ProtocolError):
    """The server process started but never signalled readiness."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Server startup timed out after {timeout}s")


class InitializationError(ProtocolError):
    """The ``initialize`` handshake was answered with a JSON-RPC error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Initialization failed" + (f": {detail}" if detail else ""))


class RequestTimeoutError(ProtocolError):
    """No response with a matching id arrived within the request window."""

    def __init__(self, method: str, timeout: float) -> None:
        self.method = method
        self.timeout = timeout
        super().__init__(f"Request timeout: {method} (no response after {timeout}s)")


class RemoteToolError(ProtocolError):
    """The server answered a request with a JSON-RPC ``error`` object.

    ``str(err)`` is the remote message verbatim.
    """

    def __init__(
        self,
        method: str,
        message: str,
        code: int | str | None = None,
        data: Any = None,
    ) -> None:
        self.method = method
        self.message = message
        self.code = code
        self.data = data
        super().__init__(message)


class TransportClosedError(ProtocolError):
    """A call was attempted while the server process is not usable."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Transport closed" + (f": {detail}" if detail else ""))


class CapabilityLoadWarning(UserWarning):
    """``tools/list`` or ``resources/list`` failed during bootstrap.

    Non-fatal: the matching catalog list stays empty.
    """

    def __init__(self, method: str, detail: str = "") -> None:
        self.method = method
        self.detail = detail
        super().__init__(f"Could not load capabilities via {method}" + (f": {detail}" if detail else ""))
