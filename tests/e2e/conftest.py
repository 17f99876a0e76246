"""Fixtures for end-to-end tests against the stub MCP server."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from querybridge.config import MCPServerConfig

STUB_SERVER = Path(__file__).with_name("stub_server.py")


@pytest.fixture
def stub_config() -> Callable[..., MCPServerConfig]:
    """Build a config that launches the stub server with the given flags."""

    def _make(*flags: str, **overrides: object) -> MCPServerConfig:
        fields: dict[str, object] = {
            "name": "stub",
            "command": sys.executable,
            "args": ["-u", str(STUB_SERVER), *flags],
            "startup_timeout": 5.0,
            "request_timeout": 5.0,
        }
        fields.update(overrides)
        return MCPServerConfig(**fields)  # type: ignore[arg-type]

    return _make
