"""``querybridge db``: SQL, tables and an interactive shell on the database server."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import click
from rich.markup import escape

from querybridge.cli_commands._output import (
    console,
    print_columns_table,
    print_query_result,
    print_rows_table,
    print_tool_result,
    print_tools_table,
)
from querybridge.cli_commands._settings import load_settings
from querybridge.config import DATABASE_SERVER
from querybridge.protocols.errors import ProtocolError

if TYPE_CHECKING:
    from querybridge.database import DatabaseService
    from querybridge.sessions import InMemorySessionStore, Session

ReadLine = Callable[[], Awaitable[str | None]]

SHELL_HELP = """\
Commands:
  <SQL>      run a query (writes go through write_query)
  tables     list tables
  tools      list the server's tools
  status     show connection status
  history    show this session's history
  help       show this message
  exit/quit  leave the shell"""


@click.group()
@click.option("--server", default=DATABASE_SERVER, show_default=True, help="Configured database server name.")
@click.pass_context
def db(ctx: click.Context, server: str) -> None:
    """Query the database MCP server."""
    ctx.ensure_object(dict)
    ctx.obj["db_server"] = server


def _run(ctx: click.Context, action: Callable[[DatabaseService], Awaitable[Any]]) -> Any:
    """Connect to the database server, run *action* with a service, disconnect."""
    from querybridge.database import DatabaseService
    from querybridge.protocols.mcp.client import MCPClient

    config = load_settings(ctx).server(ctx.obj["db_server"])

    async def _go() -> Any:
        async with MCPClient(config) as client:
            return await action(DatabaseService(client))

    return asyncio.run(_go())


@db.command("query")
@click.argument("sql")
@click.option("--write", is_flag=True, help="Send through write_query even if SQL looks read-only.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def query(ctx: click.Context, sql: str, write: bool, as_json: bool) -> None:
    """Run SQL and print the resulting rows."""

    async def _query(service: DatabaseService) -> Any:
        return await service.execute_sql(sql, read_only=False if write else None)

    try:
        result = _run(ctx, _query)
    except Exception as exc:
        console.print(f"[red]Query error:[/red] {exc}")
        return

    print_query_result(result, as_json=as_json)


@db.command("tables")
@click.pass_context
def tables(ctx: click.Context) -> None:
    """List the tables in the database."""

    async def _tables(service: DatabaseService) -> Any:
        return await service.list_tables()

    try:
        found = _run(ctx, _tables)
    except Exception as exc:
        console.print(f"[red]Table listing error:[/red] {exc}")
        return

    _print_tables(found)


@db.command("describe")
@click.argument("table")
@click.pass_context
def describe(ctx: click.Context, table: str) -> None:
    """Show the columns of TABLE."""

    async def _describe(service: DatabaseService) -> Any:
        return await service.table_columns(table)

    try:
        columns = _run(ctx, _describe)
    except Exception as exc:
        console.print(f"[red]Describe error:[/red] {exc}")
        return

    if not columns:
        console.print(f"[yellow]No columns found for {escape(table)}.[/yellow]")
        return
    print_columns_table(table, columns)


@db.command("databases")
@click.pass_context
def databases(ctx: click.Context) -> None:
    """List databases (multi-database engines only)."""

    async def _databases(service: DatabaseService) -> Any:
        return await service.list_databases()

    try:
        result = _run(ctx, _databases)
    except Exception as exc:
        console.print(f"[red]Database listing error:[/red] {exc}")
        return

    print_tool_result(result)


@db.command("schema")
@click.pass_context
def schema(ctx: click.Context) -> None:
    """Describe every table."""

    async def _schema(service: DatabaseService) -> Any:
        return await service.load_schema()

    try:
        loaded = _run(ctx, _schema)
    except Exception as exc:
        console.print(f"[red]Schema error:[/red] {exc}")
        return

    if loaded is None:
        console.print("[yellow]Could not load database schema.[/yellow]")
        return
    console.print(loaded.render(), markup=False)


@db.command("status")
@click.pass_context
def status(ctx: click.Context) -> None:
    """Connect, load the schema and report the server's status."""

    async def _status(service: DatabaseService) -> Any:
        await service.load_schema()
        return service.status()

    try:
        report = _run(ctx, _status)
    except Exception as exc:
        console.print(f"[red]Status error:[/red] {exc}")
        return

    _print_status(report)


@db.command("shell")
@click.pass_context
def shell(ctx: click.Context) -> None:
    """Interactive SQL shell; the session keeps its history until exit."""
    from querybridge.sessions import InMemorySessionStore

    store = InMemorySessionStore()

    async def _shell(service: DatabaseService) -> Any:
        return await run_shell(service, store, _read_line)

    try:
        _run(ctx, _shell)
    except Exception as exc:
        console.print(f"[red]Shell error:[/red] {exc}")


async def run_shell(
    service: DatabaseService,
    store: InMemorySessionStore,
    read_line: ReadLine,
    session_id: str | None = None,
) -> Session:
    """Read commands until EOF or ``exit``, recording each exchange in a session."""
    session = store.get_or_create(session_id)
    store.start_sweeper()
    try:
        await service.load_schema()
        console.print(f"Session {session.id}. Type 'help' for commands.", markup=False)
        while True:
            line = await read_line()
            if line is None:
                break
            command = line.strip()
            if not command:
                continue
            if command.lower() in ("exit", "quit"):
                break
            session.add_message("user", command)
            reply = await _shell_command(service, session, command)
            session.add_message("assistant", reply)
    finally:
        await store.stop_sweeper()
    return session


async def _shell_command(service: DatabaseService, session: Session, command: str) -> str:
    keyword = command.lower()
    if keyword == "help":
        console.print(SHELL_HELP, markup=False)
        return "help shown"
    if keyword == "history":
        for message in session.history[:-1]:
            console.print(f"{message['role']}: {message['content']}", markup=False)
        return f"{len(session.history) - 1} message(s)"
    if keyword == "tools":
        print_tools_table(service.client.available_tools, server=service.client.config.name)
        return f"{len(service.client.available_tools)} tool(s)"
    if keyword == "status":
        _print_status(service.status())
        return "status shown"

    try:
        if keyword == "tables":
            found = await service.list_tables()
            _print_tables(found)
            return f"{len(found)} table(s)"
        result = await service.execute_sql(command)
    except ProtocolError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        return f"error: {exc}"

    print_query_result(result)
    if result.error is not None:
        return f"error: {result.error}"
    return f"{len(result.rows)} row(s)"


async def _read_line() -> str | None:
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, _prompt)
    except EOFError:
        return None


def _prompt() -> str:
    """Blocking read from stdin (run in executor)."""
    return input("sql> ")


def _print_tables(found: list[Any]) -> None:
    if not found:
        console.print("[yellow]No tables found.[/yellow]")
        return
    print_rows_table([{"table": table.name} for table in found], limit=len(found))


def _print_status(report: Any) -> None:
    connected = "[green]connected[/green]" if report.connected else "[red]disconnected[/red]"
    console.print(f"Server: {escape(report.server)} ({connected})")
    console.print(f"Tools: {report.tools}")
    console.print(f"Resources: {report.resources}")
    if report.degraded:
        console.print("[yellow]Capability discovery was incomplete.[/yellow]")
    if report.schema_tables is None:
        console.print("Schema: not loaded")
    else:
        console.print(f"Schema: {report.schema_tables} table(s)")
