"""``querybridge tools``: list and call tools on an MCP server."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import click

from querybridge.cli_commands._output import console, print_tool_result, print_tools_table
from querybridge.cli_commands._settings import load_settings


@click.group()
def tools() -> None:
    """List and call tools."""


@tools.command("list")
@click.argument("server")
@click.pass_context
def list_tools(ctx: click.Context, server: str) -> None:
    """List the tools exposed by SERVER (a configured server name)."""
    from querybridge.protocols.mcp.client import MCPClient

    async def _list() -> Any:
        async with MCPClient(config) as client:
            return client.catalog

    try:
        config = load_settings(ctx).server(server)
        catalog = asyncio.run(_list())
    except Exception as exc:
        console.print(f"[red]Discovery error:[/red] {exc}")
        return

    if catalog.tools_error:
        console.print(f"[yellow]Tool listing failed:[/yellow] {catalog.tools_error}")
    if not catalog.tools:
        console.print("[yellow]No tools discovered.[/yellow]")
        return

    print_tools_table(catalog.tools, server=server)


@tools.command("call")
@click.argument("server")
@click.argument("tool")
@click.option("--arg", "args", multiple=True, metavar="KEY=VALUE", help="Tool argument (repeatable).")
@click.option("--json", "json_args", default=None, help="Tool arguments as a JSON object.")
@click.option("--raw", is_flag=True, help="Print the raw result as JSON.")
@click.pass_context
def call_tool(
    ctx: click.Context,
    server: str,
    tool: str,
    args: tuple[str, ...],
    json_args: str | None,
    raw: bool,
) -> None:
    """Call TOOL on SERVER and print its result."""
    from querybridge.protocols.mcp.client import MCPClient

    try:
        arguments = _parse_arguments(args, json_args)
    except click.BadParameter as exc:
        console.print(f"[red]Invalid arguments:[/red] {exc.message}")
        return

    async def _call() -> Any:
        async with MCPClient(config) as client:
            return await client.call_tool(tool, arguments)

    try:
        config = load_settings(ctx).server(server)
        result = asyncio.run(_call())
    except Exception as exc:
        console.print(f"[red]Tool call error:[/red] {exc}")
        return

    print_tool_result(result, as_json=raw)


def _parse_arguments(pairs: tuple[str, ...], json_args: str | None) -> dict[str, Any]:
    """Merge ``--json`` and ``--arg KEY=VALUE`` options into one dict.

    Values given with ``--arg`` are decoded as JSON when possible, so
    ``--arg limit=10`` passes an integer.
    """
    arguments: dict[str, Any] = {}
    if json_args:
        try:
            decoded = json.loads(json_args)
        except json.JSONDecodeError as exc:
            raise click.BadParameter(f"--json is not valid JSON: {exc}") from exc
        if not isinstance(decoded, dict):
            raise click.BadParameter("--json must be a JSON object")
        arguments.update(decoded)

    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{pair}'")
        try:
            arguments[key] = json.loads(value)
        except json.JSONDecodeError:
            arguments[key] = value
    return arguments
