"""E2E tests driving a real stub MCP server over stdio."""

from __future__ import annotations

import asyncio
import time

import pytest

from querybridge.protocols.errors import (
    CapabilityLoadWarning,
    InitializationError,
    ProcessSpawnError,
    RemoteToolError,
    RequestTimeoutError,
    StartupTimeoutError,
    TransportClosedError,
)
from querybridge.protocols.mcp.client import MCPClient
from querybridge.protocols.mcp.models import ConnectionState, ExitInfo


class TestConnect:
    async def test_connect_and_is_connected(self, stub_config) -> None:
        client = MCPClient(stub_config())
        try:
            await client.connect()
            assert client.is_connected
            assert client.state is ConnectionState.CONNECTED
            assert client.server_info == {"name": "stub", "version": "1.0"}
        finally:
            await client.disconnect()
        assert not client.is_connected

    async def test_catalog_loaded_in_server_order(self, stub_config) -> None:
        async with MCPClient(stub_config()) as client:
            names = [t.name for t in client.available_tools]
            assert names == ["read_query", "slow", "fail"]
            assert client.available_resources[0].uri == "db://tables/users"
            assert client.available_resources[0].mime_type == "application/json"
            assert not client.catalog.degraded

    async def test_startup_timeout_without_ready_marker(self, stub_config) -> None:
        client = MCPClient(stub_config("--no-ready", startup_timeout=0.2))
        started = time.monotonic()
        with pytest.raises(StartupTimeoutError):
            await client.connect()
        assert time.monotonic() - started < 3.0
        assert client.state is ConnectionState.DISCONNECTED

    async def test_initialize_as_readiness_signal(self, stub_config) -> None:
        """With no ready marker configured, connect never waits on stderr."""
        async with MCPClient(stub_config("--no-ready", ready_marker=None)) as client:
            assert client.is_connected

    async def test_spawn_failure(self, stub_config) -> None:
        client = MCPClient(stub_config(command="/nonexistent/querybridge-server"))
        with pytest.raises(ProcessSpawnError):
            await client.connect()
        assert client.state is ConnectionState.DISCONNECTED

    async def test_initialize_error(self, stub_config) -> None:
        client = MCPClient(stub_config("--init-error"))
        with pytest.raises(InitializationError, match="unsupported protocol"):
            await client.connect()
        assert client.state is ConnectionState.DISCONNECTED

    async def test_resource_listing_failure_degrades(self, stub_config) -> None:
        with pytest.warns(CapabilityLoadWarning, match="resources/list"):
            client = MCPClient(stub_config("--no-resources"))
            await client.connect()
        try:
            assert client.is_connected
            assert len(client.available_tools) == 3
            assert client.available_resources == []
            assert client.catalog.resources_error == "Method not found"
            assert client.catalog.degraded
        finally:
            await client.disconnect()

    async def test_stdout_noise_is_skipped(self, stub_config) -> None:
        async with MCPClient(stub_config("--noise")) as client:
            result = await client.call_tool("read_query", {"query": "SELECT 1"})
        assert result == {"content": [{"type": "text", "text": "42"}]}


class TestCalls:
    async def test_call_tool_returns_result_verbatim(self, stub_config) -> None:
        async with MCPClient(stub_config()) as client:
            result = await client.call_tool("read_query", {"query": "SELECT 1"})
        assert result == {"content": [{"type": "text", "text": "42"}]}

    async def test_call_tool_remote_error(self, stub_config) -> None:
        async with MCPClient(stub_config()) as client:
            with pytest.raises(RemoteToolError, match="boom") as exc_info:
                await client.call_tool("fail")
        assert exc_info.value.code == -32000
        assert exc_info.value.method == "tools/call"

    async def test_read_resource(self, stub_config) -> None:
        async with MCPClient(stub_config()) as client:
            result = await client.read_resource("db://tables/users")
        assert result["contents"][0] == {"uri": "db://tables/users", "text": "hello"}

    async def test_live_list_calls(self, stub_config) -> None:
        async with MCPClient(stub_config()) as client:
            tools = await client.list_tools()
            resources = await client.list_resources()
        assert [t["name"] for t in tools["tools"]] == ["read_query", "slow", "fail"]
        assert resources["resources"][0]["name"] == "users"

    async def test_request_timeout_names_method(self, stub_config) -> None:
        async with MCPClient(stub_config("--hang-on", "tools/call", request_timeout=0.2)) as client:
            with pytest.raises(RequestTimeoutError, match="tools/call") as exc_info:
                await client.call_tool("read_query", {"query": "SELECT 1"})
            assert exc_info.value.timeout == 0.2
            assert client.is_connected

    async def test_out_of_order_completion(self, stub_config) -> None:
        async with MCPClient(stub_config()) as client:
            order: list[str] = []

            async def call(delay: float) -> None:
                await client.call_tool("slow", {"delay": delay})
                order.append(str(delay))

            await asyncio.gather(call(0.5), call(0.05))
        assert order == ["0.05", "0.5"]


class TestLifecycle:
    async def test_disconnect_twice(self, stub_config) -> None:
        client = MCPClient(stub_config())
        await client.connect()
        await client.disconnect()
        assert client.state is ConnectionState.DISCONNECTED
        await client.disconnect()
        assert client.state is ConnectionState.DISCONNECTED

    async def test_events(self, stub_config) -> None:
        events: list[tuple[str, object]] = []
        client = MCPClient(stub_config())
        client.on("connected", lambda: events.append(("connected", None)))
        client.on("disconnected", lambda info: events.append(("disconnected", info)))

        await client.connect()
        await client.disconnect()

        assert [name for name, _ in events] == ["connected", "disconnected"]

    async def test_process_exit_fails_pending_immediately(self, stub_config) -> None:
        exits: list[ExitInfo | None] = []
        client = MCPClient(stub_config("--exit-on", "tools/call", request_timeout=10.0))
        client.on("disconnected", exits.append)
        await client.connect()
        try:
            started = time.monotonic()
            with pytest.raises(TransportClosedError):
                await client.call_tool("read_query", {"query": "SELECT 1"})
            assert time.monotonic() - started < 5.0
            assert client.state is ConnectionState.DISCONNECTED
            assert exits == [ExitInfo(code=3)]
        finally:
            await client.disconnect()

    async def test_calls_after_disconnect_fail_fast(self, stub_config) -> None:
        client = MCPClient(stub_config())
        await client.connect()
        await client.disconnect()
        with pytest.raises(TransportClosedError):
            await client.call_tool("read_query", {"query": "SELECT 1"})

    async def test_reconnect_refreshes_catalog(self, stub_config) -> None:
        client = MCPClient(stub_config())
        await client.connect()
        await client.disconnect()
        await client.connect()
        try:
            assert client.is_connected
            assert len(client.available_tools) == 3
        finally:
            await client.disconnect()
