"""Protocol layer: the MCP stdio client and its error types."""

from querybridge.protocols.errors import (
    CapabilityLoadWarning,
    InitializationError,
    ProcessSpawnError,
    ProtocolError,
    RemoteToolError,
    RequestTimeoutError,
    StartupTimeoutError,
    TransportClosedError,
)

__all__ = [
    "CapabilityLoadWarning",
    "InitializationError",
    "ProcessSpawnError",
    "ProtocolError",
    "RemoteToolError",
    "RequestTimeoutError",
    "StartupTimeoutError",
    "TransportClosedError",
]
