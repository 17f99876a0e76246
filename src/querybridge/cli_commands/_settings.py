"""Settings resolution shared by the CLI subcommands."""

from __future__ import annotations

from typing import TYPE_CHECKING

from querybridge.config import Settings, SettingsLoader, settings_from_env

if TYPE_CHECKING:
    import click


def load_settings(ctx: click.Context) -> Settings:
    """Load settings from ``--config`` if given, else from the environment."""
    path = (ctx.obj or {}).get("config_path")
    if path is not None:
        return SettingsLoader(path).load()
    return settings_from_env()
