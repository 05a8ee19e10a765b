"""
Tracing for job handling.

Each worker wraps the three steps of a job (claim, execute, resolve) in a
span; the dashboard gets request spans from the FastAPI instrumentation.
Nothing leaves the process unless an OTLP endpoint is configured.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Span, Tracer

from queuectl import __version__
from queuectl.config import Settings, get_settings

ATTRIBUTE_PREFIX = "queuectl."

_tracer: Tracer | None = None


def _span_processors(settings: Settings, console: bool) -> list[SpanProcessor]:
    processors: list[SpanProcessor] = []
    if settings.otel_exporter_otlp_endpoint:
        processors.append(BatchSpanProcessor(
            OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint, insecure=True)
        ))
    if console:
        processors.append(BatchSpanProcessor(ConsoleSpanExporter()))
    return processors


def setup_tracing(enable_console_export: bool = False) -> Tracer:
    """
    Install a tracer provider named after the queue service.

    Args:
        enable_console_export: Also print finished spans to stdout.

    Returns:
        Tracer: The tracer used by `job_span`.
    """
    global _tracer

    settings = get_settings()
    provider = TracerProvider(
        resource=Resource.create({
            "service.name": settings.otel_service_name,
            "service.version": __version__,
        })
    )
    for processor in _span_processors(settings, enable_console_export):
        provider.add_span_processor(processor)

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(settings.otel_service_name, __version__)
    return _tracer


def instrument_fastapi(app: Any) -> None:
    """Add request spans to the dashboard app."""
    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,metrics")


def get_tracer() -> Tracer:
    """The configured tracer, or the global provider's (no-op until set up)."""
    if _tracer is None:
        return trace.get_tracer(get_settings().otel_service_name, __version__)
    return _tracer


def set_job_attributes(span: Span, **attributes: Any) -> None:
    """Set `queuectl.`-prefixed attributes, skipping None values."""
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(ATTRIBUTE_PREFIX + key, value)


@contextmanager
def job_span(name: str, **attributes: Any) -> Iterator[Span]:
    """
    Run a block inside a span for one step of a job.

    Exceptions are recorded on the span by OpenTelemetry and re-raised.

    Args:
        name: Span name, one of the SPAN_* constants.
        **attributes: Initial attributes, e.g. job_id or worker_id.
    """
    with get_tracer().start_as_current_span(name) as span:
        set_job_attributes(span, **attributes)
        yield span
