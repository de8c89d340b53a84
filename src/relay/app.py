"""Process wiring for the change-event relay."""

import asyncio
import logging

from config.config import RelayConfig, StorageSettings
from core.logging import PeriodicStatsLogger, log_startup_summary
from core.resilience import BackoffPolicy
from relay.common.broker import Broker, Subscription
from relay.common.kafka_broker import KafkaBroker
from relay.common.memory import InMemoryBroker
from relay.common.metrics import NullMetrics, RelayMetrics
from relay.dlq import DeadLetterRetryConsumer
from relay.persistence import EventPersistenceService
from relay.storage import EventStore, InMemoryEventStore
from relay.stream import StreamConnector

logger = logging.getLogger(__name__)


def build_broker(config: RelayConfig, dev: bool = False) -> Broker:
    if dev:
        return InMemoryBroker()
    return KafkaBroker(config.kafka)


async def build_store(settings: StorageSettings, dev: bool = False) -> EventStore:
    if dev or settings.backend == "memory":
        return InMemoryEventStore()

    from relay.storage.mongo import MongoEventStore

    store = MongoEventStore.from_uri(
        settings.mongodb_uri,
        settings.database,
        events_collection=settings.events_collection,
        failed_events_collection=settings.failed_events_collection,
    )
    await store.create_indexes()
    return store


class RelayApplication:
    """
    Runs the three long-lived parts of the relay on one event loop:

    - stream connector task (upstream -> main topic), unless disabled
    - main-topic subscription feeding the persistence service
    - dead-letter subscription(s) feeding the retry consumer
    """

    def __init__(
        self,
        config: RelayConfig,
        broker: Broker,
        store: EventStore,
        metrics: RelayMetrics | None = None,
        enable_stream: bool = True,
        worker_id: str = "",
    ):
        self.config = config
        self.broker = broker
        self.store = store
        self.metrics = metrics or NullMetrics()
        self.enable_stream = enable_stream
        self.worker_id = worker_id

        persistence = config.persistence
        self.persistence = EventPersistenceService(
            store,
            broker,
            config.kafka.dlq_topic,
            metrics=self.metrics,
            queue_capacity=persistence.queue_capacity,
            batch_size=persistence.batch_size,
            flush_interval_ms=persistence.flush_interval_ms,
            poll_timeout_ms=persistence.poll_timeout_ms,
            shutdown_timeout_seconds=persistence.shutdown_timeout_seconds,
        )
        self.dlq_consumer = DeadLetterRetryConsumer(
            store,
            metrics=self.metrics,
            max_retry_count=config.dlq.max_retry_count,
        )

        self.connector: StreamConnector | None = None
        if enable_stream:
            stream = config.stream
            self.connector = StreamConnector(
                broker,
                config.kafka.main_topic,
                stream.url,
                BackoffPolicy.from_stream_settings(
                    stream.max_retry_attempts,
                    stream.initial_backoff_seconds,
                    stream.max_backoff_minutes,
                    jitter=stream.jitter,
                ),
                metrics=self.metrics,
                sock_read_timeout=stream.sock_read_timeout_seconds,
                connect_timeout=stream.connect_timeout_seconds,
                user_agent=stream.user_agent,
            )

        self.stats_logger = PeriodicStatsLogger(
            config.observability.stats_interval_seconds,
            self.get_stats,
            stage="relay",
            worker_id=worker_id,
        )

        self._subscriptions: list[Subscription] = []
        self._connector_task: asyncio.Task | None = None
        self._started = False

    async def handle_main_event(self, payload: str) -> None:
        """Main-topic handler: hand off to the buffer without blocking."""
        if not self.persistence.submit(payload):
            logger.warning(
                "Event queue full, event dropped",
                extra={"queue_capacity": self.persistence.queue_capacity},
            )

    def get_stats(self) -> dict:
        stats = {
            "events_persisted": self.persistence.events_persisted,
            "events_dlq": self.persistence.events_dlq,
            "events_dropped": self.persistence.events_dropped,
            "dlq_reprocessed": self.dlq_consumer.reprocessed,
            "dlq_exhausted": self.dlq_consumer.exhausted,
            "queue_size": self.persistence.queue_size(),
        }
        if self.connector is not None:
            stats["events_produced"] = self.connector.produced
            stats["stream_reconnects"] = self.connector.reconnects
        return stats

    async def start(self) -> None:
        if self._started:
            logger.warning("Relay already started")
            return

        kafka = self.config.kafka
        log_startup_summary(
            logger,
            "change-event relay",
            {
                "Kafka bootstrap servers": kafka.bootstrap_servers,
                "Main topic": kafka.main_topic,
                "DLQ topic": kafka.dlq_topic,
                "Consumer group": kafka.consumer_group,
                "DLQ consumer group": kafka.dlq_consumer_group,
                "Stream": self.config.stream.url if self.enable_stream else "disabled",
                "Storage backend": type(self.store).__name__,
            },
        )

        await self.broker.start()
        await self.persistence.start()

        self._subscriptions.append(
            await self.broker.subscribe(kafka.main_topic, kafka.consumer_group, self.handle_main_event)
        )
        for i in range(self.config.dlq.consumer_instances):
            self._subscriptions.append(
                await self.broker.subscribe(
                    kafka.dlq_topic,
                    kafka.dlq_consumer_group,
                    self.dlq_consumer.consume,
                    instance_id=str(i),
                )
            )

        if self.connector is not None:
            self._connector_task = asyncio.create_task(self.connector.run(), name="stream-connector")
            self._connector_task.add_done_callback(self._on_connector_done)

        self.stats_logger.start()
        self._started = True
        logger.info("Relay started")

    def _on_connector_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Stream connector task exited with error",
                extra={"error_type": type(exc).__name__, "error_message": str(exc)},
            )

    async def run_until(self, shutdown_event: asyncio.Event) -> None:
        """Start, wait for shutdown_event, then stop."""
        await self.start()
        try:
            await shutdown_event.wait()
            logger.info("Shutdown requested")
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Tear down in dependency order: producers and consumers first, then the writer, then the broker."""
        if not self._started:
            return
        self._started = False

        if self.connector is not None:
            self.connector.stop()
        if self._connector_task is not None:
            self._connector_task.cancel()
            try:
                await self._connector_task
            except asyncio.CancelledError:
                pass
            except Exception:
                # Already reported by _on_connector_done
                pass
            self._connector_task = None

        for subscription in self._subscriptions:
            try:
                await subscription.cancel()
            except Exception:
                logger.error(
                    "Error cancelling subscription",
                    extra={"topic": subscription.topic, "group_id": subscription.group_id},
                    exc_info=True,
                )
        self._subscriptions.clear()

        await self.persistence.shutdown()
        await self.stats_logger.stop()
        self.stats_logger.log_cycle()

        await self.broker.stop()

        close = getattr(self.store, "close", None)
        if callable(close):
            close()

        logger.info("Relay stopped", extra=self.get_stats())


__all__ = ["RelayApplication", "build_broker", "build_store"]
