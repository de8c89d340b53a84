"""
OpenTelemetry tracing for the relay.

setup_tracing() installs a global TracerProvider that batches spans to an
OTLP/HTTP collector. Until it runs, traced() creates non-recording spans,
so components can always open spans whether or not export is configured.

Spans opened by the relay:
    stream.event.publish    one per payload sent to the main topic
    persistence.batch.flush one per bulk write, errored when the batch
                            went to the DLQ
    dlq.event.reprocess     one per DLQ delivery, errored when the insert
                            failed again
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Span, SpanKind, Status, StatusCode

from config.config import TracingSettings

logger = logging.getLogger(__name__)

_tracer = trace.get_tracer("relay")


def build_tracer_provider(
    settings: TracingSettings,
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """Provider tagged with the service name, sampling by trace id ratio.

    Child spans follow their parent's sampling decision.
    """
    provider = TracerProvider(
        resource=Resource.create({SERVICE_NAME: settings.service_name}),
        sampler=ParentBased(TraceIdRatioBased(settings.sample_ratio)),
    )
    provider.add_span_processor(
        BatchSpanProcessor(exporter or OTLPSpanExporter(endpoint=settings.endpoint))
    )
    return provider


def setup_tracing(settings: TracingSettings) -> TracerProvider | None:
    """Install the global provider. Returns None when tracing is disabled."""
    if not settings.enabled:
        logger.info("Tracing disabled")
        return None

    provider = build_tracer_provider(settings)
    trace.set_tracer_provider(provider)
    logger.info(
        "Configured OTLP span exporter",
        extra={"endpoint": settings.endpoint, "sample_ratio": settings.sample_ratio},
    )
    return provider


def shutdown_tracing(provider: TracerProvider | None) -> None:
    """Flush pending spans and stop the exporter."""
    if provider is None:
        return
    try:
        provider.shutdown()
    except Exception as e:
        logger.warning("Error shutting down tracer provider", extra={"error": str(e)})


@contextmanager
def traced(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span]:
    """Run the block inside a new current span.

    An exception escaping the block is recorded on the span and re-raised.
    """
    with _tracer.start_as_current_span(name, kind=kind, attributes=attributes) as span:
        yield span


def mark_failed(span: Span, error: BaseException) -> None:
    """Record a handled failure on the span."""
    span.record_exception(error)
    span.set_status(Status(StatusCode.ERROR, str(error)))


__all__ = [
    "build_tracer_provider",
    "mark_failed",
    "setup_tracing",
    "shutdown_tracing",
    "traced",
]
