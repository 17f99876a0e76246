"""Tests for ``querybridge config`` CLI command."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from querybridge.cli import main

SETTINGS = """
database:
  type: mysql
  host: db
  name: bookings
  password: hunter2
servers:
  database:
    command: node
    args: [server.js]
"""


class TestConfigShow:
    def test_show_masks_password(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text(SETTINGS, encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(path), "config", "show"])

        assert result.exit_code == 0
        assert "database: node server.js --mysql" in result.output
        assert "hunter2" not in result.output

    def test_show_json(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text(SETTINGS, encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(path), "config", "show", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["database"]["password"] == "********"
        assert data["servers"]["database"]["command"] == "node"

    def test_show_from_environment(self) -> None:
        runner = CliRunner(env={"MCP_SERVER_PATH": "", "DATABASE_TYPE": ""})
        result = runner.invoke(main, ["config", "show"])

        assert result.exit_code == 0
        assert "chart: npx -y @antv/mcp-server-chart" in result.output

    def test_invalid_config(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("- not a mapping\n", encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(path), "config", "show"])

        assert "Config error" in result.output

    def test_invalid_database_env_keeps_other_servers(self) -> None:
        runner = CliRunner(env={"MCP_SERVER_PATH": "srv.js", "DATABASE_TYPE": "postgresql"})
        result = runner.invoke(main, ["config", "show"])

        assert result.exit_code == 0
        assert "chart: npx -y @antv/mcp-server-chart" in result.output
        assert "Invalid database settings" in result.output
