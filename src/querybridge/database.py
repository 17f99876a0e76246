"""DatabaseService: SQL operations on top of a database MCP server.

The database MCP server exposes ``read_query``, ``write_query``,
``list_tables``, ``describe_table`` and ``list_databases``.  Their results
carry JSON in the first text block, e.g.
``{"content": [{"type": "text", "text": "[{\\"id\\": 1}]"}]}``.

Usage::

    async with MCPClient(settings.server("database")) as client:
        service = DatabaseService(client)
        result = await service.execute_sql("SELECT * FROM users")
        for row in result.rows:
            ...
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from querybridge.protocols.errors import ProtocolError
from querybridge.protocols.mcp.content import extract_text, first_text

if TYPE_CHECKING:
    from querybridge.protocols.mcp.client import MCPClient

logger = logging.getLogger(__name__)

READ_QUERY = "read_query"
WRITE_QUERY = "write_query"
LIST_TABLES = "list_tables"
DESCRIBE_TABLE = "describe_table"
LIST_DATABASES = "list_databases"

_READ_KEYWORDS = frozenset({"select", "with", "pragma", "explain", "show", "describe", "desc"})


def is_read_only(sql: str) -> bool:
    """Guess whether *sql* only reads, from its first keyword."""
    words = sql.strip().split(None, 1)
    return bool(words) and words[0].lower().rstrip(";") in _READ_KEYWORDS


class QueryResult(BaseModel):
    """Outcome of one ``read_query``/``write_query`` call.

    ``rows`` holds the decoded JSON rows; a write reports its
    ``affected_rows`` object as a single row.  ``text`` is set when the
    server answered with text that is not JSON.
    """

    sql: str
    tool: str
    rows: list[dict[str, Any]] = Field(default_factory=list)
    error: str | None = None
    is_error: bool = False
    text: str | None = None
    raw: Any = None


class TableInfo(BaseModel):
    name: str


class ColumnInfo(BaseModel):
    """One column, from ``describe_table`` in any engine's spelling."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(validation_alias=AliasChoices("name", "Field", "column_name"))
    type: str | None = Field(default=None, validation_alias=AliasChoices("type", "Type", "data_type"))
    key: str | None = Field(default=None, validation_alias=AliasChoices("key", "Key"))
    nullable: str | bool | None = Field(default=None, validation_alias=AliasChoices("nullable", "Null"))

    @property
    def not_null(self) -> bool:
        return self.nullable in ("NO", False)


class TableSchema(BaseModel):
    name: str
    columns: list[ColumnInfo] = Field(default_factory=list)
    error: str | None = None


class DatabaseSchema(BaseModel):
    tables: list[TableSchema] = Field(default_factory=list)

    def render(self) -> str:
        """Render the schema as the plain-text overview shown to users."""
        lines = ["=== DATABASE SCHEMA ===", ""]
        for table in self.tables:
            lines.append(f"Table: {table.name}")
            if table.error is not None:
                lines.append("Columns: (error loading)")
            elif not table.columns:
                lines.append("Columns: (could not load)")
            else:
                lines.append("Columns:")
                for column in table.columns:
                    line = f"  - {column.name} ({column.type or 'unknown'})"
                    if column.key:
                        line += f" [{column.key}]"
                    if column.not_null:
                        line += " NOT NULL"
                    lines.append(line)
            lines.append("")
        return "\n".join(lines)


class DatabaseStatus(BaseModel):
    server: str
    connected: bool
    tools: int
    resources: int
    degraded: bool
    schema_tables: int | None = None


class DatabaseService:
    """High-level database operations over a connected :class:`MCPClient`."""

    def __init__(self, client: MCPClient) -> None:
        self._client = client
        self._schema: DatabaseSchema | None = None

    @property
    def client(self) -> MCPClient:
        return self._client

    @property
    def schema(self) -> DatabaseSchema | None:
        """The schema from the last :meth:`load_schema`, if it succeeded."""
        return self._schema

    async def execute_sql(self, sql: str, *, read_only: bool | None = None) -> QueryResult:
        """Run *sql* via ``read_query`` or ``write_query``.

        With ``read_only=None`` the tool is picked by :func:`is_read_only`.
        Remote failures raise :class:`~querybridge.protocols.errors.RemoteToolError`;
        errors the server reports inside the result land in ``error``.
        """
        if read_only is None:
            read_only = is_read_only(sql)
        tool = READ_QUERY if read_only else WRITE_QUERY
        raw = await self._client.call_tool(tool, {"query": sql})

        result = QueryResult(
            sql=sql,
            tool=tool,
            raw=raw,
            is_error=isinstance(raw, dict) and bool(raw.get("isError")),
        )
        try:
            data = _json_text(raw)
        except ValueError:
            text = extract_text(raw)
            if result.is_error:
                result.error = text
            else:
                result.text = text
            return result

        if isinstance(data, list):
            result.rows = [row if isinstance(row, dict) else {"value": row} for row in data]
        elif isinstance(data, dict) and "error" in data:
            result.error = str(data["error"])
        elif isinstance(data, dict):
            result.rows = [data]
        else:
            result.rows = [{"value": data}]
        return result

    async def list_tables(self) -> list[TableInfo]:
        """Return the tables reported by ``list_tables``."""
        raw = await self._client.call_tool(LIST_TABLES)
        try:
            entries = _json_text(raw)
        except ValueError:
            entries = raw.get("tables") if isinstance(raw, dict) else None
        if not isinstance(entries, list):
            logger.warning("Could not parse table list from '%s'", self._client.config.name)
            return []

        tables = []
        for entry in entries:
            if isinstance(entry, str):
                tables.append(TableInfo(name=entry))
            elif isinstance(entry, dict) and isinstance(entry.get("name"), str):
                tables.append(TableInfo(name=entry["name"]))
        return tables

    async def describe_table(self, table: str) -> Any:
        """Send ``describe_table`` and return the raw result."""
        return await self._client.call_tool(DESCRIBE_TABLE, {"table": table})

    async def list_databases(self) -> Any:
        """Send ``list_databases`` and return the raw result."""
        return await self._client.call_tool(LIST_DATABASES)

    async def table_columns(self, table: str) -> list[ColumnInfo]:
        """Describe *table*, falling back to the keys of one sample row."""
        raw = await self.describe_table(table)
        try:
            data = _json_text(raw)
            if isinstance(data, dict) and "error" in data:
                raise ValueError(str(data["error"]))
            if isinstance(data, dict) and isinstance(data.get("columns"), list):
                data = data["columns"]
            if not isinstance(data, list):
                msg = "describe_table returned no column list"
                raise ValueError(msg)
            return [ColumnInfo.model_validate(column) for column in data if isinstance(column, dict)]
        except ValueError as exc:
            logger.debug("describe_table failed for %s (%s), sampling a row", table, exc)

        sample = await self.execute_sql(f"SELECT * FROM {table} LIMIT 1", read_only=True)
        if not sample.rows:
            return []
        return [ColumnInfo(name=key, type=_sample_type(value)) for key, value in sample.rows[0].items()]

    async def load_schema(self) -> DatabaseSchema | None:
        """Describe every table.  Returns ``None`` if tables can't be listed.

        A table that cannot be described is kept with its ``error`` set.
        """
        try:
            tables = await self.list_tables()
        except ProtocolError as exc:
            logger.warning("Could not load database schema: %s", exc)
            self._schema = None
            return None

        schema = DatabaseSchema()
        for table in tables:
            try:
                columns = await self.table_columns(table.name)
            except ProtocolError as exc:
                logger.warning("Could not describe table %s: %s", table.name, exc)
                schema.tables.append(TableSchema(name=table.name, error=str(exc)))
            else:
                schema.tables.append(TableSchema(name=table.name, columns=columns))

        logger.info("Loaded schema for %d table(s)", len(schema.tables))
        self._schema = schema
        return schema

    def status(self) -> DatabaseStatus:
        client = self._client
        return DatabaseStatus(
            server=client.config.name,
            connected=client.is_connected,
            tools=len(client.available_tools),
            resources=len(client.available_resources),
            degraded=client.catalog.degraded,
            schema_tables=len(self._schema.tables) if self._schema is not None else None,
        )


def _json_text(result: Any) -> Any:
    text = first_text(result)
    if text is None:
        msg = "result has no text content"
        raise ValueError(msg)
    return json.loads(text)


def _sample_type(value: Any) -> str:
    if isinstance(value, bool):
        return "unknown"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "varchar"
    return "unknown"
