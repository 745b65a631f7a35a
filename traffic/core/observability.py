"""Distributed tracing of Traffic routes with OpenTelemetry.

Each compiled route runs inside a ``traffic.route`` span opened by
:func:`route_span`. When a request ends in an issue, :func:`record_issue`
tags the span with the issue code and status, so rejected requests can be
told apart from handler responses in a trace view. Spans go to Loguru
(``console``), to an OTLP collector (``otlp``), or nowhere (``none``).
"""

from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Final

from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from traffic.core.context import get_correlation_id

if TYPE_CHECKING:
    from collections.abc import Generator, Sequence

    from fastapi import FastAPI

    from traffic.core.config import Settings
    from traffic.core.issues import Issue

SERVICE_NAME_KEY: Final[str] = "service.name"
SERVICE_VERSION_KEY: Final[str] = "service.version"
ENVIRONMENT_KEY: Final[str] = "deployment.environment"

ROUTE_SPAN: Final[str] = "traffic.route"
CORRELATION_ID_KEY: Final[str] = "correlation_id"
CORRELATION_HEADER: Final[str] = "x-correlation-id"
ISSUE_CODE_KEY: Final[str] = "traffic.issue.code"
ISSUE_STATUS_KEY: Final[str] = "traffic.issue.status"
ISSUE_DEFLECTED_KEY: Final[str] = "traffic.issue.deflected"


class LoguruSpanExporter(SpanExporter):
    """Span exporter that writes finished spans through the Loguru logger.

    Route spans that ended in an issue are logged with the issue code, so the
    console shows which stage rejected the request.
    """

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        for span in spans:
            span_context = span.get_span_context()
            if not span_context:
                continue

            attributes = dict(span.attributes or {})
            duration_ms = None
            if span.end_time and span.start_time:
                duration_ms = (span.end_time - span.start_time) // 1_000_000

            log = logger.bind(
                trace_id=f"0x{span_context.trace_id:032x}",
                span_id=f"0x{span_context.span_id:016x}",
                correlation_id=attributes.get(CORRELATION_ID_KEY),
                span_name=span.name,
                duration_ms=duration_ms,
                issue_code=attributes.get(ISSUE_CODE_KEY),
                attributes=attributes,
            )
            if ISSUE_CODE_KEY in attributes:
                log.debug(
                    "Span {} ended with issue {}", span.name, attributes[ISSUE_CODE_KEY]
                )
            else:
                log.debug("Span {} completed", span.name)

        return SpanExportResult.SUCCESS


def get_span_exporter(settings: Settings) -> SpanExporter | None:
    """Get the span exporter for the configured exporter type.

    Args:
        settings: Application settings.

    Returns:
        SpanExporter | None: Configured exporter or None if disabled.
    """
    config = settings.observability_config
    if config.exporter_type == "console":
        return LoguruSpanExporter()
    if config.exporter_type == "otlp":
        endpoint = config.exporter_endpoint or "http://localhost:4317"
        logger.info("Exporting spans to OTLP collector at {}", endpoint)
        return OTLPSpanExporter(
            endpoint=endpoint,
            insecure=settings.environment == "development",
        )
    return None


@lru_cache(maxsize=1)
def get_tracer() -> trace.Tracer:
    """Return the tracer used for route spans."""
    return trace.get_tracer("traffic")


def setup_tracing(settings: Settings) -> None:
    """Install a global tracer provider with the configured exporter.

    Args:
        settings: Application settings.
    """
    config = settings.observability_config
    if not config.enable_tracing:
        logger.info("Tracing disabled by configuration")
        return

    tracer_provider = TracerProvider(
        resource=Resource.create(
            {
                SERVICE_NAME_KEY: settings.app_name,
                SERVICE_VERSION_KEY: settings.app_version,
                ENVIRONMENT_KEY: settings.environment,
            }
        ),
        sampler=TraceIdRatioBased(config.trace_sample_rate),
    )
    if exporter := get_span_exporter(settings):
        tracer_provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(tracer_provider)

    logger.info(
        "Tracing configured",
        exporter_type=config.exporter_type,
        sample_rate=config.trace_sample_rate,
    )


def add_correlation_id_to_span(span: trace.Span, scope: dict[str, Any]) -> None:
    """Copy the client's correlation ID header onto the server span.

    The server span opens before the correlation middleware runs, so the ID
    is read from the raw ASGI headers.

    Args:
        span: The server span.
        scope: ASGI scope of the request.
    """
    header = CORRELATION_HEADER.encode("latin-1")
    for name, value in scope.get("headers", ()):
        if name.lower() == header:
            span.set_attribute(CORRELATION_ID_KEY, value.decode("latin-1"))
            return


def instrument_app(app: FastAPI, settings: Settings) -> None:
    """Instrument a FastAPI application for tracing.

    Args:
        app: FastAPI application to instrument.
        settings: Application settings.
    """
    if not settings.observability_config.enable_tracing:
        return

    FastAPIInstrumentor.instrument_app(
        app,
        excluded_urls=",".join(settings.log_config.excluded_paths),
        server_request_hook=add_correlation_id_to_span,
    )
    logger.info("Application instrumented for tracing")


@contextmanager
def route_span(method: str, path: str | None) -> Generator[trace.Span]:
    """Open the span covering one route invocation.

    Args:
        method: HTTP method of the request.
        path: Declared route path; unmounted routes have none.

    Yields:
        trace.Span: The active route span.
    """
    span = get_tracer().start_span(ROUTE_SPAN)
    span.set_attribute("http.method", method)
    span.set_attribute("traffic.path", path or "")
    if correlation_id := get_correlation_id():
        span.set_attribute(CORRELATION_ID_KEY, correlation_id)

    with trace.use_span(span, end_on_exit=True):
        yield span


def record_issue(span: trace.Span, issue: Issue) -> None:
    """Tag a route span with the issue the request ended in."""
    span.set_attribute(ISSUE_CODE_KEY, issue.code)
    span.set_attribute(ISSUE_STATUS_KEY, issue.status)
    span.set_attribute(ISSUE_DEFLECTED_KEY, issue.deflected)
