"""MCP models: JSON-RPC 2.0 messages, catalog entries, and lifecycle types.

Implements the message format used by the Model Context Protocol for
the handshake (``initialize``), discovery (``tools/list``,
``resources/list``) and invocation (``tools/call``, ``resources/read``).
"""

from __future__ import annotations

import signal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

PROTOCOL_VERSION = "2024-11-05"

# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request message."""

    jsonrpc: str = "2.0"
    id: int
    method: str
    params: dict[str, Any] | None = None


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object.

    Servers in the wild omit ``code`` or ``message`` often enough that both
    are optional here.
    """

    code: int | str | None = None
    message: str | None = None
    data: Any = None


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response message."""

    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: Any = None
    error: JsonRpcError | None = None


# ---------------------------------------------------------------------------
# MCP-specific payloads
# ---------------------------------------------------------------------------


class ClientInfo(BaseModel):
    """Identity sent in the ``initialize`` request."""

    name: str = "querybridge"
    version: str = "0.1.0"


class ToolDescriptor(BaseModel):
    """A tool definition as returned by ``tools/list``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")


class ResourceDescriptor(BaseModel):
    """A resource entry as returned by ``resources/list``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uri: str
    name: str = ""
    description: str = ""
    mime_type: str | None = Field(default=None, alias="mimeType")


class CapabilityCatalog(BaseModel):
    """What the server exposed during the capability bootstrap.

    The ``*_error`` fields hold the failure message when the matching list
    call failed; the list itself is then empty.
    """

    tools: list[ToolDescriptor] = Field(default_factory=list)
    resources: list[ResourceDescriptor] = Field(default_factory=list)
    tools_error: str | None = None
    resources_error: str | None = None

    @property
    def degraded(self) -> bool:
        return self.tools_error is not None or self.resources_error is not None

    def tool(self, name: str) -> ToolDescriptor | None:
        return next((t for t in self.tools if t.name == name), None)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class ConnectionState(str, Enum):
    """Connection lifecycle of an :class:`~querybridge.protocols.mcp.client.MCPClient`."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    INITIALIZED = "initialized"
    CONNECTED = "connected"


class ExitInfo(BaseModel):
    """How the server process ended: an exit code or a signal name."""

    code: int | None = None
    signal: str | None = None

    @classmethod
    def from_returncode(cls, returncode: int | None) -> ExitInfo:
        """Build from ``Process.returncode`` (negative means killed by a signal)."""
        if returncode is None or returncode >= 0:
            return cls(code=returncode)
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = str(-returncode)
        return cls(signal=name)

    def __str__(self) -> str:
        if self.signal is not None:
            return f"signal {self.signal}"
        return f"code {self.code}"
