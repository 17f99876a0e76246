"""querybridge CLI entrypoint."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from querybridge import __version__


@click.group()
@click.version_option(version=__version__, prog_name="querybridge")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Settings YAML (default: read MCP_SERVER_PATH / DATABASE_* from the environment).",
)
@click.option("-v", "--verbose", is_flag=True, help="Log protocol and server output.")
@click.option("--trace", is_flag=True, help="Export OpenTelemetry spans to the console.")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, verbose: bool, trace: bool) -> None:
    """querybridge: talk to MCP servers over stdio."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if trace:
        from querybridge.utils.telemetry import configure_telemetry

        configure_telemetry()


# Register subcommands
from querybridge.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
