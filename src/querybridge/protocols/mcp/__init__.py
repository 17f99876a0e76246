"""MCP protocol: Model Context Protocol client over stdio."""

from querybridge.protocols.mcp.client import MCPClient
from querybridge.protocols.mcp.correlator import PendingRequest, RequestCorrelator
from querybridge.protocols.mcp.models import (
    CapabilityCatalog,
    ClientInfo,
    ConnectionState,
    ExitInfo,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    ResourceDescriptor,
    ToolDescriptor,
)
from querybridge.protocols.mcp.transport import StdioTransport

__all__ = [
    "CapabilityCatalog",
    "ClientInfo",
    "ConnectionState",
    "ExitInfo",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "MCPClient",
    "PendingRequest",
    "RequestCorrelator",
    "ResourceDescriptor",
    "StdioTransport",
    "ToolDescriptor",
]
