"""E2E tests for DatabaseService against the stub server in database mode."""

from __future__ import annotations

import pytest

from querybridge.database import READ_QUERY, WRITE_QUERY, DatabaseService
from querybridge.protocols.errors import RemoteToolError
from querybridge.protocols.mcp.client import MCPClient


class TestQueries:
    async def test_select_rows(self, stub_config) -> None:
        async with MCPClient(stub_config("--database")) as client:
            result = await DatabaseService(client).execute_sql("SELECT * FROM users")

        assert result.tool == READ_QUERY
        assert result.rows == [{"id": 1, "name": "alice"}, {"id": 2, "name": "bob"}]
        assert result.error is None

    async def test_write_goes_through_write_query(self, stub_config) -> None:
        async with MCPClient(stub_config("--database")) as client:
            result = await DatabaseService(client).execute_sql("UPDATE users SET name = 'carol'")

        assert result.tool == WRITE_QUERY
        assert result.rows == [{"affected_rows": 1}]

    async def test_error_result(self, stub_config) -> None:
        async with MCPClient(stub_config("--database")) as client:
            result = await DatabaseService(client).execute_sql("SELECT * FROM missing")

        assert result.is_error
        assert result.error == "Error: no such table: missing"
        assert result.rows == []


class TestTables:
    async def test_list_tables(self, stub_config) -> None:
        async with MCPClient(stub_config("--database")) as client:
            tables = await DatabaseService(client).list_tables()

        assert [t.name for t in tables] == ["users", "events"]

    async def test_describe_columns(self, stub_config) -> None:
        async with MCPClient(stub_config("--database")) as client:
            columns = await DatabaseService(client).table_columns("users")

        assert [c.name for c in columns] == ["id", "name"]
        assert columns[0].key == "PRI"
        assert columns[0].not_null
        assert not columns[1].not_null

    async def test_columns_fall_back_to_sample_row(self, stub_config) -> None:
        async with MCPClient(stub_config("--database")) as client:
            columns = await DatabaseService(client).table_columns("events")

        assert [(c.name, c.type) for c in columns] == [
            ("id", "number"),
            ("kind", "varchar"),
            ("at", "varchar"),
        ]

    async def test_load_schema(self, stub_config) -> None:
        async with MCPClient(stub_config("--database")) as client:
            service = DatabaseService(client)
            schema = await service.load_schema()
            status = service.status()

        assert schema is not None
        assert service.schema is schema
        text = schema.render()
        assert "Table: users" in text
        assert "  - id (int) [PRI] NOT NULL" in text
        assert "  - kind (varchar)" in text
        assert status.tools == 7
        assert status.schema_tables == 2
        assert status.connected

    async def test_list_databases(self, stub_config) -> None:
        async with MCPClient(stub_config("--database")) as client:
            result = await DatabaseService(client).list_databases()

        assert result == {"content": [{"type": "text", "text": "main"}]}


class TestWithoutDatabaseTools:
    async def test_schema_unavailable(self, stub_config) -> None:
        async with MCPClient(stub_config()) as client:
            service = DatabaseService(client)
            assert await service.load_schema() is None
            assert service.status().schema_tables is None

    async def test_unknown_tool_raises(self, stub_config) -> None:
        async with MCPClient(stub_config()) as client:
            with pytest.raises(RemoteToolError, match="Unknown tool: list_tables"):
                await DatabaseService(client).list_tables()
