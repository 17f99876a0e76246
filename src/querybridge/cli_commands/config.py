"""``querybridge config``: inspect the resolved settings."""

from __future__ import annotations

import click
from rich.markup import escape

from querybridge.cli_commands._output import console, print_json
from querybridge.cli_commands._settings import load_settings
from querybridge.config import REDACTED
from querybridge.errors import ConfigError


@click.group("config")
def config_cmd() -> None:
    """Inspect settings."""


@config_cmd.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def show(ctx: click.Context, as_json: bool) -> None:
    """Show configured servers and database settings (passwords masked)."""
    try:
        settings = load_settings(ctx)
    except Exception as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        return

    if as_json:
        print_json(settings.redacted())
        return

    data = settings.redacted()
    console.print("[bold]Servers[/bold]")
    for name in settings.servers:
        try:
            server = settings.server(name)
        except ConfigError as exc:
            console.print(f"  {name}: [red]{escape(str(exc))}[/red]")
            continue
        command = " ".join([server.command, *server.args])
        if settings.database is not None and settings.database.password:
            command = command.replace(settings.database.password, REDACTED)
        console.print(f"  {name}: {command}", markup=False)

    database = data.get("database")
    if database:
        console.print("\n[bold]Database[/bold]")
        for key, value in database.items():
            if value not in (None, False):
                console.print(f"  {key}: {value}", markup=False)
