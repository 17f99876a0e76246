"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from querybridge.cli_commands.config import config_cmd
    from querybridge.cli_commands.db import db
    from querybridge.cli_commands.resources import resources
    from querybridge.cli_commands.tools import tools

    cli.add_command(tools)
    cli.add_command(resources)
    cli.add_command(db)
    cli.add_command(config_cmd)
