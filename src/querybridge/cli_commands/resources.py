"""``querybridge resources``: list and read resources on an MCP server."""

from __future__ import annotations

import asyncio
from typing import Any

import click

from querybridge.cli_commands._output import console, print_json, print_resources_table
from querybridge.cli_commands._settings import load_settings


@click.group()
def resources() -> None:
    """List and read resources."""


@resources.command("list")
@click.argument("server")
@click.pass_context
def list_resources(ctx: click.Context, server: str) -> None:
    """List the resources exposed by SERVER."""
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

    if catalog.resources_error:
        console.print(f"[yellow]Resource listing failed:[/yellow] {catalog.resources_error}")
    if not catalog.resources:
        console.print("[yellow]No resources discovered.[/yellow]")
        return

    print_resources_table(catalog.resources, server=server)


@resources.command("read")
@click.argument("server")
@click.argument("uri")
@click.pass_context
def read_resource(ctx: click.Context, server: str, uri: str) -> None:
    """Read URI from SERVER and print the raw result."""
    from querybridge.protocols.mcp.client import MCPClient

    async def _read() -> Any:
        async with MCPClient(config) as client:
            return await client.read_resource(uri)

    try:
        config = load_settings(ctx).server(server)
        result = asyncio.run(_read())
    except Exception as exc:
        console.print(f"[red]Read error:[/red] {exc}")
        return

    print_json(result)
