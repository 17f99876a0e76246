"""Shared CLI output formatters."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from querybridge.database import ColumnInfo, QueryResult  # noqa: TC001
from querybridge.protocols.mcp.content import extract_text, extract_urls
from querybridge.protocols.mcp.models import ResourceDescriptor, ToolDescriptor  # noqa: TC001

console = Console()

MAX_DISPLAY_ROWS = 20


def print_tools_table(tools: list[ToolDescriptor], *, server: str = "") -> None:
    """Pretty-print tool descriptors as a table."""
    table = Table(title=f"Tools on {server}" if server else "Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Arguments")

    for tool in tools:
        properties = tool.input_schema.get("properties", {})
        table.add_row(
            tool.name,
            _truncate(tool.description),
            ", ".join(properties) or "-",
        )

    console.print(table)


def print_resources_table(resources: list[ResourceDescriptor], *, server: str = "") -> None:
    """Pretty-print resource descriptors as a table."""
    table = Table(title=f"Resources on {server}" if server else "Resources")
    table.add_column("URI", style="cyan")
    table.add_column("Name")
    table.add_column("MIME type")

    for resource in resources:
        table.add_row(resource.uri, resource.name or "-", resource.mime_type or "-")

    console.print(table)


def print_tool_result(result: Any, *, as_json: bool = False) -> None:
    """Print a ``tools/call`` result as text plus any URLs it carries."""
    if as_json:
        console.print_json(json.dumps(result, default=str))
        return

    if isinstance(result, dict) and result.get("isError"):
        console.print("[red]Tool reported an error:[/red]")
    console.print(extract_text(result), markup=False)

    urls = extract_urls(result)
    if urls:
        console.print("\n[bold]Links:[/bold]")
        for url in urls:
            console.print(f"  {url}", markup=False)


def print_rows_table(rows: list[dict[str, Any]], *, limit: int = MAX_DISPLAY_ROWS) -> None:
    """Print query rows as a table, capped at *limit* rows."""
    columns: list[str] = []
    for row in rows:
        columns.extend(key for key in row if key not in columns)

    table = Table()
    for column in columns:
        table.add_column(column)
    for row in rows[:limit]:
        table.add_row(*("" if row.get(c) is None else str(row.get(c)) for c in columns))
    console.print(table)

    if len(rows) > limit:
        console.print(f"... and {len(rows) - limit} more rows")


def print_query_result(result: QueryResult, *, as_json: bool = False) -> None:
    """Print a SQL result: row count and rows, or the server's error."""
    if as_json:
        print_json(result.model_dump(exclude={"raw"}))
        return

    if result.error is not None:
        console.print(f"[red]Query failed:[/red] {escape(result.error)}")
        return
    if result.text is not None:
        console.print(result.text, markup=False)
        return

    console.print(f"Found {len(result.rows)} row(s) via {result.tool}")
    if result.rows:
        print_rows_table(result.rows)


def print_columns_table(table_name: str, columns: list[ColumnInfo]) -> None:
    table = Table(title=f"Table {table_name}")
    table.add_column("Column", style="cyan")
    table.add_column("Type")
    table.add_column("Key")
    table.add_column("Not null")

    for column in columns:
        table.add_row(
            column.name,
            column.type or "unknown",
            column.key or "",
            "yes" if column.not_null else "",
        )

    console.print(table)


def print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
