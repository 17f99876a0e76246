"""Tests for MCP request tracing."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from opentelemetry import trace

from querybridge.utils.telemetry import (
    ATTR_METHOD,
    ATTR_REQUEST_ID,
    ATTR_SERVER,
    ATTR_TOOL_NAME,
    REQUEST_SPAN,
    configure_telemetry,
    get_tracer,
    request_span,
)


class TestRequestSpan:
    def test_sets_request_attributes(self) -> None:
        tracer = MagicMock()
        span = tracer.start_as_current_span.return_value.__enter__.return_value

        with request_span(tracer, "db", "tools/call", 7, {ATTR_TOOL_NAME: "read_query"}) as opened:
            assert opened is span

        tracer.start_as_current_span.assert_called_once_with(REQUEST_SPAN)
        span.set_attribute.assert_any_call(ATTR_SERVER, "db")
        span.set_attribute.assert_any_call(ATTR_METHOD, "tools/call")
        span.set_attribute.assert_any_call(ATTR_REQUEST_ID, 7)
        span.set_attribute.assert_any_call(ATTR_TOOL_NAME, "read_query")

    def test_exception_propagates(self) -> None:
        with pytest.raises(RuntimeError, match="boom"):
            with request_span(get_tracer("test.noop"), "db", "tools/list", 1):
                raise RuntimeError("boom")

    def test_default_tracer_is_usable(self) -> None:
        assert isinstance(get_tracer(), trace.Tracer)
        with request_span(get_tracer(), "db", "initialize", 1) as span:
            assert not span.is_recording()


class TestConfigureTelemetry:
    def test_requires_sdk(self) -> None:
        with patch.dict("sys.modules", {"opentelemetry.sdk.resources": None}):
            with pytest.raises(ImportError, match="opentelemetry-sdk"):
                configure_telemetry()

    def test_otlp_requires_exporter(self) -> None:
        pytest.importorskip("opentelemetry.sdk.trace")

        with patch.dict(
            "sys.modules",
            {"opentelemetry.exporter.otlp.proto.grpc.trace_exporter": None},
        ):
            with pytest.raises(ImportError, match="opentelemetry-exporter-otlp"):
                configure_telemetry(console=False, otlp_endpoint="http://localhost:4317")
