"""
Metrics sink for the relay components.

Components receive a ``RelayMetrics`` instance instead of touching a
process-wide registry, so each one can be exercised in isolation:
- PrometheusMetrics: counters and a queue-size gauge on a (possibly
  private) CollectorRegistry
- NullMetrics: no-op sink, the default when nothing is injected
"""

import logging
from collections.abc import Callable
from typing import Protocol

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge

logger = logging.getLogger(__name__)


class RelayMetrics(Protocol):
    """Counters and gauges exposed by the relay."""

    def record_produced(self) -> None: ...

    def record_reconnect(self) -> None: ...

    def record_persisted(self, count: int) -> None: ...

    def record_dlq(self, count: int = 1) -> None: ...

    def record_dropped(self) -> None: ...

    def record_reprocessed(self, success: bool) -> None: ...

    def record_exhausted(self) -> None: ...

    def track_queue_size(self, fn: Callable[[], int]) -> None: ...


class NullMetrics:
    """No-op metrics sink."""

    def record_produced(self) -> None:
        pass

    def record_reconnect(self) -> None:
        pass

    def record_persisted(self, count: int) -> None:
        pass

    def record_dlq(self, count: int = 1) -> None:
        pass

    def record_dropped(self) -> None:
        pass

    def record_reprocessed(self, success: bool) -> None:
        pass

    def record_exhausted(self) -> None:
        pass

    def track_queue_size(self, fn: Callable[[], int]) -> None:
        pass


class PrometheusMetrics:
    """Prometheus-backed metrics sink.

    Pass a fresh ``CollectorRegistry`` in tests; the default is the global
    registry served by ``prometheus_client.start_http_server``.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else REGISTRY

        self.events_produced = Counter(
            "relay_events_produced",
            "Events published to the main topic by the stream connector",
            registry=self.registry,
        )
        self.stream_reconnects = Counter(
            "relay_stream_reconnects",
            "Reconnect attempts to the upstream stream",
            registry=self.registry,
        )
        self.events_persisted = Counter(
            "relay_events_persisted",
            "Events written to storage by the batch writer",
            registry=self.registry,
        )
        self.events_dlq = Counter(
            "relay_events_dlq",
            "Events routed to the dead-letter topic after a failed batch write",
            registry=self.registry,
        )
        self.events_dropped = Counter(
            "relay_events_dropped",
            "Events rejected because the ingestion buffer was full",
            registry=self.registry,
        )
        self.dlq_reprocessed = Counter(
            "relay_dlq_reprocessed",
            "Dead-letter reprocessing attempts by outcome",
            labelnames=["outcome"],
            registry=self.registry,
        )
        self.dlq_exhausted = Counter(
            "relay_dlq_exhausted",
            "Dead-letter events that reached the max retry count",
            registry=self.registry,
        )
        self.queue_size = Gauge(
            "relay_queue_size",
            "Events waiting in the ingestion buffer",
            registry=self.registry,
        )

    def record_produced(self) -> None:
        self.events_produced.inc()

    def record_reconnect(self) -> None:
        self.stream_reconnects.inc()

    def record_persisted(self, count: int) -> None:
        self.events_persisted.inc(count)

    def record_dlq(self, count: int = 1) -> None:
        self.events_dlq.inc(count)

    def record_dropped(self) -> None:
        self.events_dropped.inc()

    def record_reprocessed(self, success: bool) -> None:
        self.dlq_reprocessed.labels(outcome="success" if success else "failure").inc()

    def record_exhausted(self) -> None:
        self.dlq_exhausted.inc()

    def track_queue_size(self, fn: Callable[[], int]) -> None:
        self.queue_size.set_function(fn)


__all__ = ["RelayMetrics", "NullMetrics", "PrometheusMetrics"]
