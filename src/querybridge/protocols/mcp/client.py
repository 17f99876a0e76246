"""MCPClient: connects to a stdio MCP server and exposes tools and resources.

Lifecycle: :meth:`MCPClient.connect` spawns the server, waits for it to be
ready, runs the ``initialize`` handshake and loads the tool/resource
catalog.  After that, :meth:`~MCPClient.call_tool` and
:meth:`~MCPClient.read_resource` are independent round trips that may run
concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import warnings
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from querybridge import __version__
from querybridge.config import MCPServerConfig  # noqa: TC001
from querybridge.protocols.errors import (
    CapabilityLoadWarning,
    InitializationError,
    ProtocolError,
    RemoteToolError,
    StartupTimeoutError,
    TransportClosedError,
)
from querybridge.protocols.mcp.correlator import RequestCorrelator
from querybridge.protocols.mcp.models import (
    PROTOCOL_VERSION,
    CapabilityCatalog,
    ClientInfo,
    ConnectionState,
    ExitInfo,
    ResourceDescriptor,
    ToolDescriptor,
)
from querybridge.protocols.mcp.transport import StdioTransport
from querybridge.utils.telemetry import ATTR_RESOURCE_URI, ATTR_TOOL_NAME, get_tracer, request_span

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

EVENTS = ("connected", "disconnected", "error")

Listener = Callable[..., None]


class MCPClient:
    """Async context manager that connects to an MCP server.

    Usage::

        config = MCPServerConfig(name="db", command="node", args=["server.js", "app.db"])
        async with MCPClient(config) as client:
            tools = client.available_tools
            result = await client.call_tool("read_query", {"query": "SELECT 1"})

    Lifecycle events (``connected``, ``disconnected``, ``error``) can be
    observed with :meth:`on`.
    """

    def __init__(self, config: MCPServerConfig, *, client_info: ClientInfo | None = None) -> None:
        self._config = config
        self._client_info = client_info or ClientInfo(version=__version__)
        self._transport: StdioTransport | None = None
        self._correlator: RequestCorrelator | None = None
        self._state = ConnectionState.DISCONNECTED
        self._catalog = CapabilityCatalog()
        self._server_info: dict[str, Any] = {}
        self._server_capabilities: dict[str, Any] = {}
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    async def __aenter__(self) -> MCPClient:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def config(self) -> MCPServerConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def server_info(self) -> dict[str, Any]:
        return self._server_info

    @property
    def server_capabilities(self) -> dict[str, Any]:
        return self._server_capabilities

    @property
    def catalog(self) -> CapabilityCatalog:
        return self._catalog

    @property
    def available_tools(self) -> list[ToolDescriptor]:
        return self._catalog.tools

    @property
    def available_resources(self) -> list[ResourceDescriptor]:
        return self._catalog.resources

    def on(self, event: str, listener: Listener) -> None:
        """Register *listener* for a lifecycle event."""
        if event not in EVENTS:
            msg = f"Unknown event '{event}' (expected one of {', '.join(EVENTS)})"
            raise ValueError(msg)
        self._listeners[event].append(listener)

    def off(self, event: str, listener: Listener) -> None:
        """Remove a listener added with :meth:`on`."""
        if listener in self._listeners.get(event, []):
            self._listeners[event].remove(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> CapabilityCatalog:
        """Spawn the server, run the handshake, and load the catalog."""
        if self._state is not ConnectionState.DISCONNECTED:
            msg = f"Client for '{self._config.name}' is already {self._state.value}"
            raise ProtocolError(msg)
        if self._transport is not None:
            # Left behind by a server that exited on its own.
            await self._teardown()

        self._state = ConnectionState.CONNECTING
        self._catalog = CapabilityCatalog()
        self._transport = self._create_transport()
        self._correlator = RequestCorrelator(
            self._transport.send,
            request_timeout=self._config.request_timeout,
        )

        try:
            await self._transport.connect()
            if self._config.ready_marker is None:
                # No stderr marker: the first initialize response is the
                # readiness signal, bounded by the startup window.
                try:
                    await asyncio.wait_for(self.initialize(), timeout=self._config.startup_timeout)
                except TimeoutError:
                    raise StartupTimeoutError(self._config.startup_timeout) from None
            else:
                await self.initialize()
            await self.load_capabilities()
        except BaseException:
            logger.error("Failed to connect to MCP server '%s'", self._config.name)
            await self._teardown()
            raise

        self._state = ConnectionState.CONNECTED
        logger.info("MCP client connected to '%s'", self._config.name)
        self._emit("connected")
        return self._catalog

    async def disconnect(self) -> None:
        """Terminate the server process.  Safe to call more than once."""
        was_active = self._state is not ConnectionState.DISCONNECTED
        await self._teardown()
        if was_active:
            logger.info("MCP client disconnected from '%s'", self._config.name)

    async def initialize(self) -> dict[str, Any]:
        """Perform the MCP ``initialize`` handshake."""
        params = {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"roots": {"listChanged": True}, "sampling": {}},
            "clientInfo": self._client_info.model_dump(),
        }
        try:
            result = await self._request("initialize", params, allowed=(ConnectionState.CONNECTING,))
        except RemoteToolError as exc:
            raise InitializationError(exc.message) from exc

        result = result if isinstance(result, dict) else {}
        self._server_info = result.get("serverInfo") or {}
        self._server_capabilities = result.get("capabilities") or {}
        self._state = ConnectionState.INITIALIZED
        logger.info("MCP session initialized with '%s'", self._config.name)
        return result

    async def load_capabilities(self) -> CapabilityCatalog:
        """Populate the catalog from ``tools/list`` and ``resources/list``.

        A failure of either call is logged and recorded on the catalog but
        never raised.
        """
        catalog = CapabilityCatalog()

        try:
            result = await self.list_tools()
            catalog.tools = [ToolDescriptor.model_validate(t) for t in _entries(result, "tools")]
        except (ProtocolError, ValidationError) as exc:
            catalog.tools_error = str(exc)
            self._warn_capability("tools/list", exc)

        try:
            result = await self.list_resources()
            catalog.resources = [
                ResourceDescriptor.model_validate(r) for r in _entries(result, "resources")
            ]
        except (ProtocolError, ValidationError) as exc:
            catalog.resources_error = str(exc)
            self._warn_capability("resources/list", exc)

        logger.info(
            "Found %d tool(s) and %d resource(s) on '%s'",
            len(catalog.tools),
            len(catalog.resources),
            self._config.name,
        )
        self._catalog = catalog
        return catalog

    # ------------------------------------------------------------------
    # Tools and resources
    # ------------------------------------------------------------------

    async def list_tools(self) -> Any:
        """Send ``tools/list`` and return the raw result."""
        return await self._request("tools/list", allowed=_LISTABLE)

    async def list_resources(self) -> Any:
        """Send ``resources/list`` and return the raw result."""
        return await self._request("resources/list", allowed=_LISTABLE)

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Send ``tools/call`` for the named tool and return the raw result."""
        if not isinstance(name, str) or not name:
            msg = "Tool name must be a non-empty string"
            raise ValueError(msg)
        return await self._request(
            "tools/call",
            {"name": name, "arguments": arguments or {}},
            attributes={ATTR_TOOL_NAME: name},
        )

    async def read_resource(self, uri: str) -> Any:
        """Send ``resources/read`` for *uri* and return the raw result."""
        return await self._request(
            "resources/read",
            {"uri": uri},
            attributes={ATTR_RESOURCE_URI: uri},
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _create_transport(self) -> StdioTransport:
        """Build the stdio transport from the server config."""
        return StdioTransport(
            self._config.command,
            self._config.args,
            env=self._config.env,
            cwd=self._config.cwd,
            ready_marker=self._config.ready_marker,
            startup_timeout=self._config.startup_timeout,
            on_message=self._handle_message,
            on_exit=self._handle_exit,
            on_error=self._handle_error,
            server_name=self._config.name,
        )

    async def _request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        allowed: tuple[ConnectionState, ...] = (ConnectionState.CONNECTED,),
        attributes: dict[str, str] | None = None,
    ) -> Any:
        """Send a JSON-RPC request and wait for its result."""
        if self._state not in allowed or self._correlator is None:
            raise TransportClosedError(
                f"cannot send {method} while client for '{self._config.name}' is {self._state.value}"
            )

        request = self._correlator.build_request(method, params)
        with request_span(_tracer, self._config.name, method, request.id, attributes):
            return await self._correlator.send_request(request)

    def _handle_message(self, message: dict[str, Any]) -> None:
        if self._correlator is not None:
            self._correlator.handle_message(message)

    def _handle_exit(self, info: ExitInfo) -> None:
        self._mark_disconnected(info, f"server exited with {info}")

    def _handle_error(self, exc: Exception) -> None:
        self._emit("error", exc)

    async def _teardown(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()
        self._mark_disconnected(None, "client disconnected")

    def _mark_disconnected(self, info: ExitInfo | None, reason: str) -> None:
        if self._correlator is not None:
            self._correlator.fail_all(TransportClosedError(reason))
        if self._state is ConnectionState.DISCONNECTED:
            return
        self._state = ConnectionState.DISCONNECTED
        self._emit("disconnected", info)

    def _warn_capability(self, method: str, exc: Exception) -> None:
        logger.warning("Could not load capabilities from '%s' via %s: %s", self._config.name, method, exc)
        warnings.warn(CapabilityLoadWarning(method, str(exc)), stacklevel=3)

    def _emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(*args)
            except Exception:
                logger.exception("Listener for '%s' event failed", event)


_LISTABLE = (ConnectionState.INITIALIZED, ConnectionState.CONNECTED)


def _entries(result: Any, key: str) -> list[Any]:
    if isinstance(result, dict):
        entries = result.get(key)
        if isinstance(entries, list):
            return entries
    return []
