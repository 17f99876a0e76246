"""OpenTelemetry tracing for MCP round trips.

Every JSON-RPC request runs inside an ``mcp.request`` span opened by
:func:`request_span`.  Until :func:`configure_telemetry` installs an SDK
provider (``pip install querybridge[otel]``), the API's default provider
hands out non-recording spans.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from opentelemetry import trace

ATTR_SERVER = "mcp.server"
ATTR_METHOD = "mcp.method"
ATTR_REQUEST_ID = "mcp.request.id"
ATTR_TOOL_NAME = "mcp.tool.name"
ATTR_RESOURCE_URI = "mcp.resource.uri"

REQUEST_SPAN = "mcp.request"

_INSTRUMENTATION_NAME = "querybridge"


def get_tracer(name: str | None = None) -> trace.Tracer:
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


@contextmanager
def request_span(
    tracer: trace.Tracer,
    server: str,
    method: str,
    request_id: int,
    attributes: dict[str, str] | None = None,
) -> Iterator[trace.Span]:
    """Open an ``mcp.request`` span tagged with server, method and id.

    Exceptions raised inside the block are recorded on the span and
    re-raised.
    """
    with tracer.start_as_current_span(REQUEST_SPAN) as span:
        span.set_attribute(ATTR_SERVER, server)
        span.set_attribute(ATTR_METHOD, method)
        span.set_attribute(ATTR_REQUEST_ID, request_id)
        for key, value in (attributes or {}).items():
            span.set_attribute(key, value)
        yield span


def configure_telemetry(
    *,
    service_name: str = "querybridge",
    console: bool = True,
    otlp_endpoint: str | None = None,
) -> None:
    """Install an SDK tracer provider exporting to the console and/or OTLP.

    Raises:
        ImportError: ``opentelemetry-sdk`` (or, when *otlp_endpoint* is set,
            ``opentelemetry-exporter-otlp``) is not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import (
            BatchSpanProcessor,
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )
    except ImportError as exc:
        msg = "Tracing needs opentelemetry-sdk: pip install querybridge[otel]"
        raise ImportError(msg) from exc

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    if console:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        except ImportError as exc:
            msg = "OTLP export needs opentelemetry-exporter-otlp: pip install querybridge[otel]"
            raise ImportError(msg) from exc
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))

    trace.set_tracer_provider(provider)
