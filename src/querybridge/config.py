"""Settings: which MCP servers to launch and how.

Settings come either from a YAML file (see :class:`SettingsLoader`) or from
environment variables (see :func:`settings_from_env`).  Example YAML::

    database:
      type: postgresql
      host: ${DATABASE_HOST}
      name: reservations
      user: app
    servers:
      database:
        command: node
        args: [/opt/mcp-database-server/dist/src/index.js]
        request_timeout: 60
      chart:
        command: npx
        args: [-y, "@antv/mcp-server-chart"]
        ready_marker: null

The ``database`` server gets the engine flags from
:meth:`DatabaseSettings.server_args` appended to its ``args``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from querybridge.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_READY_MARKER = "Server running"
DATABASE_SERVER = "database"
CHART_SERVER = "chart"
CHART_SERVER_PACKAGE = "@antv/mcp-server-chart"
DEFAULT_SQLITE_PATH = "data/test.db"

REDACTED = "********"


class MCPServerConfig(BaseModel):
    """How to launch one MCP server over stdio."""

    name: str
    command: str
    args: list[str] = []
    env: dict[str, str] | None = None
    cwd: str | None = None
    ready_marker: str | None = DEFAULT_READY_MARKER
    startup_timeout: float = Field(default=10.0, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)


DatabaseType = Literal["sqlite", "postgresql", "mysql", "sqlserver"]


class DatabaseSettings(BaseModel):
    """Connection settings handed to the database MCP server as CLI flags."""

    type: DatabaseType = "sqlite"
    path: str | None = None
    host: str | None = None
    port: int | None = None
    name: str | None = None
    user: str | None = None
    password: str | None = None
    server: str | None = None
    ssl: bool | None = None
    aws_iam_auth: bool = False
    aws_region: str | None = None

    @model_validator(mode="after")
    def _validate_required(self) -> DatabaseSettings:
        if self.type == "sqlite":
            if not self.path:
                msg = "sqlite database requires 'path'"
                raise ValueError(msg)
        elif self.type == "sqlserver":
            if not self.server or not self.name:
                msg = "sqlserver database requires 'server' and 'name'"
                raise ValueError(msg)
        elif not self.host or not self.name:
            msg = f"{self.type} database requires 'host' and 'name'"
            raise ValueError(msg)
        return self

    def server_args(self) -> list[str]:
        """Build the command-line flags for the database MCP server."""
        if self.type == "sqlite":
            return [str(self.path)]

        if self.type == "sqlserver":
            args = ["--sqlserver", "--server", str(self.server), "--database", str(self.name)]
        else:
            args = [f"--{self.type}", "--host", str(self.host), "--database", str(self.name)]

        if self.user:
            args += ["--user", self.user]
        if self.password:
            args += ["--password", self.password]
        if self.port:
            args += ["--port", str(self.port)]
        if self.ssl is not None and self.type != "sqlserver":
            args += ["--ssl", str(self.ssl).lower()]
        if self.type == "mysql" and self.aws_iam_auth:
            args.append("--aws-iam-auth")
            if self.aws_region:
                args += ["--aws-region", self.aws_region]
        return args


class Settings(BaseModel):
    """Top-level settings: named servers plus optional database settings."""

    servers: dict[str, MCPServerConfig] = Field(default_factory=dict)
    database: DatabaseSettings | None = None
    database_error: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_server_names(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("servers"), dict):
            servers = {}
            for key, value in data["servers"].items():
                if isinstance(value, dict):
                    value = {"name": key, **value}
                servers[key] = value
            data = {**data, "servers": servers}
        return data

    def server(self, name: str) -> MCPServerConfig:
        """Return the launch config for *name*, with database flags applied."""
        config = self.servers.get(name)
        if config is None:
            known = ", ".join(sorted(self.servers)) or "none"
            raise ConfigError(f"Unknown server '{name}' (configured: {known})")
        if name == DATABASE_SERVER and self.database_error is not None:
            raise ConfigError(f"Invalid database settings: {self.database_error}")
        if name == DATABASE_SERVER and self.database is not None:
            return config.model_copy(update={"args": [*config.args, *self.database.server_args()]})
        return config

    def redacted(self) -> dict[str, Any]:
        """Dump the settings with passwords masked."""
        data = self.model_dump()
        database = data.get("database")
        if database and database.get("password"):
            database["password"] = REDACTED
        return data


class SettingsLoader:
    """Load and validate a settings YAML file into :class:`Settings`."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> Settings:
        """Read YAML, interpolate env vars, and validate.

        Environment variables in the form ``${VAR}`` or ``$VAR`` are expanded
        using :func:`os.path.expandvars` before YAML parsing.

        Raises:
            ConfigError: On read errors, YAML parse errors or validation failures.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read {self._path}: {exc}") from exc

        expanded = os.path.expandvars(raw)

        try:
            data: Any = yaml.safe_load(expanded)
        except yaml.YAMLError as exc:
            raise ConfigError(f"YAML parse error: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Settings YAML must be a mapping")

        try:
            return Settings.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc


def settings_from_env(environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from ``MCP_SERVER_PATH`` and ``DATABASE_*`` variables.

    The database server runs as ``node $MCP_SERVER_PATH <engine flags>``;
    sqlite falls back to :data:`DEFAULT_SQLITE_PATH` when ``DATABASE_PATH``
    is unset.  The chart server runs from npm and prints no ready marker.

    Invalid ``DATABASE_*`` values do not fail here: they are kept in
    :attr:`Settings.database_error` and raised by ``server("database")``,
    so the other servers stay usable.
    """
    env = os.environ if environ is None else environ
    servers: dict[str, MCPServerConfig] = {
        CHART_SERVER: MCPServerConfig(
            name=CHART_SERVER,
            command="npx",
            args=["-y", CHART_SERVER_PACKAGE],
            ready_marker=None,
        ),
    }

    database: DatabaseSettings | None = None
    database_error: str | None = None
    server_path = env.get("MCP_SERVER_PATH")
    if server_path:
        try:
            servers[DATABASE_SERVER] = MCPServerConfig(
                name=DATABASE_SERVER,
                command="node",
                args=[server_path],
                request_timeout=env.get("MCP_REQUEST_TIMEOUT", "30"),  # type: ignore[arg-type]
            )
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc

        db_type = env.get("DATABASE_TYPE") or "sqlite"
        default_path = DEFAULT_SQLITE_PATH if db_type == "sqlite" else None
        try:
            database = DatabaseSettings(
                type=db_type,  # type: ignore[arg-type]
                path=env.get("DATABASE_PATH") or default_path,
                host=env.get("DATABASE_HOST"),
                port=env.get("DATABASE_PORT") or None,  # type: ignore[arg-type]
                name=env.get("DATABASE_NAME"),
                user=env.get("DATABASE_USER"),
                password=env.get("DATABASE_PASSWORD"),
                server=env.get("DATABASE_SERVER"),
                ssl=env.get("DATABASE_SSL") or None,  # type: ignore[arg-type]
                aws_iam_auth=env.get("DATABASE_AWS_IAM_AUTH", "false").lower() == "true",
                aws_region=env.get("DATABASE_AWS_REGION"),
            )
        except ValidationError as exc:
            database_error = "; ".join(err["msg"] for err in exc.errors())
            logger.warning("Ignoring invalid DATABASE_* settings: %s", database_error)

    return Settings(servers=servers, database=database, database_error=database_error)
