"""Broker abstraction, Kafka and in-memory adapters, metrics sink, tracing."""

from relay.common.broker import Broker, Subscription
from relay.common.kafka_broker import KafkaBroker
from relay.common.memory import InMemoryBroker
from relay.common.metrics import NullMetrics, PrometheusMetrics, RelayMetrics
from relay.common.signals import install_shutdown_handlers
from relay.common.tracing import setup_tracing, shutdown_tracing

__all__ = [
    "Broker",
    "Subscription",
    "KafkaBroker",
    "InMemoryBroker",
    "RelayMetrics",
    "NullMetrics",
    "PrometheusMetrics",
    "install_shutdown_handlers",
    "setup_tracing",
    "shutdown_tracing",
]
