"""Smoke test to verify the project scaffolding works."""

from __future__ import annotations


def test_import() -> None:
    import querybridge

    assert querybridge.__version__ == "0.1.0"


def test_cli_entrypoint() -> None:
    from querybridge.cli import main

    assert callable(main)


def test_protocol_imports() -> None:
    from querybridge.protocols import ProtocolError, RemoteToolError
    from querybridge.protocols.mcp import MCPClient, RequestCorrelator, StdioTransport

    assert issubclass(RemoteToolError, ProtocolError)
    assert MCPClient is not None
    assert RequestCorrelator is not None
    assert StdioTransport is not None
