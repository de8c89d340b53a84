"""
Ingestion buffer and batch writer.

The main-topic handler calls submit(), which never blocks: it enqueues into
a bounded asyncio.Queue or reports the event as dropped. A single worker
task drains the queue into an in-memory batch and flushes it to storage on
size or time triggers. A failed bulk write dead-letters the whole batch:
every payload is published to the DLQ topic and gets a FailedEvent record
with retry_count=0 (best effort).
"""

import asyncio
import logging
import time
import uuid

from core.errors import error_type_name
from core.logging import LogContext, log_exception, log_phase, set_log_context
from relay.common.broker import Broker
from relay.common.metrics import NullMetrics, RelayMetrics
from relay.common.tracing import mark_failed, traced
from relay.storage import EventStore, FailedEvent

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_CAPACITY = 10000
DEFAULT_BATCH_SIZE = 100
DEFAULT_FLUSH_INTERVAL_MS = 1000
DEFAULT_POLL_TIMEOUT_MS = 100
DEFAULT_SHUTDOWN_TIMEOUT_SECONDS = 30.0


class EventPersistenceService:
    """
    Bounded buffer plus single-worker batch writer.

    Flush triggers:
    - batch reaches batch_size
    - flush_interval_ms elapsed since the last flush and the batch is non-empty

    Shutdown:
    - the worker observes the stop flag at its next poll timeout
    - one final flush of the in-memory batch, items still queued are not drained
    - bounded wait for the worker, then cancellation
    """

    def __init__(
        self,
        store: EventStore,
        broker: Broker,
        dlq_topic: str,
        metrics: RelayMetrics | None = None,
        queue_capacity: int = DEFAULT_QUEUE_CAPACITY,
        batch_size: int = DEFAULT_BATCH_SIZE,
        flush_interval_ms: int = DEFAULT_FLUSH_INTERVAL_MS,
        poll_timeout_ms: int = DEFAULT_POLL_TIMEOUT_MS,
        shutdown_timeout_seconds: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
    ):
        if queue_capacity < 1:
            raise ValueError(f"queue_capacity must be >= 1, got {queue_capacity}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if not dlq_topic:
            raise ValueError("dlq_topic is required")

        self.store = store
        self.broker = broker
        self.dlq_topic = dlq_topic
        self.metrics = metrics or NullMetrics()
        self.queue_capacity = queue_capacity
        self.batch_size = batch_size
        self.flush_interval = flush_interval_ms / 1000.0
        self.poll_timeout = poll_timeout_ms / 1000.0
        self.shutdown_timeout = shutdown_timeout_seconds

        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_capacity)
        self._batch: list[str] = []
        self._last_flush = time.monotonic()
        self._stop_event = asyncio.Event()
        self._worker: asyncio.Task | None = None

        self.events_persisted = 0
        self.events_dlq = 0
        self.events_dropped = 0
        self.batches_flushed = 0
        self.batches_failed = 0

        self.metrics.track_queue_size(self.queue_size)

    async def start(self) -> None:
        if self._worker is not None:
            logger.warning("Persistence worker already running")
            return

        self._stop_event.clear()
        self._last_flush = time.monotonic()
        self._worker = asyncio.create_task(self._run(), name="event-persistence-worker")

        logger.info(
            "Event persistence service started",
            extra={
                "queue_capacity": self.queue_capacity,
                "batch_size": self.batch_size,
                "flush_interval_ms": int(self.flush_interval * 1000),
                "dlq_topic": self.dlq_topic,
            },
        )

    def submit(self, payload: str) -> bool:
        """Enqueue without blocking. False means the buffer was full and the event is dropped."""
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self.events_dropped += 1
            self.metrics.record_dropped()
            return False
        return True

    def queue_size(self) -> int:
        return self._queue.qsize()

    @property
    def pending_batch_size(self) -> int:
        """Items accumulated in the current in-memory batch."""
        return len(self._batch)

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def shutdown(self) -> None:
        logger.info(
            "Shutting down event persistence service",
            extra={"queue_size": self.queue_size(), "batch_size": len(self._batch)},
        )
        self._stop_event.set()

        if self._worker is None:
            return

        try:
            await asyncio.wait_for(asyncio.shield(self._worker), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Persistence worker did not finish in time, cancelling",
                extra={"queue_size": self.queue_size(), "batch_size": len(self._batch)},
            )
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        finally:
            self._worker = None

        if self.queue_size():
            logger.warning(
                "Events left in buffer at shutdown were not persisted",
                extra={"queue_size": self.queue_size()},
            )

    def _should_flush(self) -> bool:
        if len(self._batch) >= self.batch_size:
            return True
        return bool(self._batch) and time.monotonic() - self._last_flush >= self.flush_interval

    async def _run(self) -> None:
        set_log_context(stage="persistence")
        logger.debug("Persistence worker started")
        try:
            while not self._stop_event.is_set():
                try:
                    payload = await asyncio.wait_for(self._queue.get(), timeout=self.poll_timeout)
                except asyncio.TimeoutError:
                    payload = None

                if payload is not None:
                    self._batch.append(payload)

                if self._should_flush():
                    await self._flush()

            if self._batch:
                await self._flush()
        except asyncio.CancelledError:
            logger.debug("Persistence worker cancelled", extra={"batch_size": len(self._batch)})
            raise

        logger.info(
            "Event persistence worker stopped",
            extra={
                "events_persisted": self.events_persisted,
                "events_dlq": self.events_dlq,
                "events_dropped": self.events_dropped,
            },
        )

    async def _flush(self) -> None:
        """Write the current batch in one bulk insert; dead-letter all of it on failure."""
        if not self._batch:
            return

        batch_id = uuid.uuid4().hex[:8]
        batch = self._batch
        self._batch = []
        self._last_flush = time.monotonic()

        with LogContext(batch_id=batch_id), traced(
            "persistence.batch.flush",
            attributes={"relay.batch.id": batch_id, "relay.batch.size": len(batch)},
        ) as span:
            try:
                with log_phase(logger, "bulk_insert", batch_size=len(batch)):
                    await self.store.bulk_insert(batch)
            except Exception as e:
                mark_failed(span, e)
                span.set_attribute("relay.batch.dead_lettered", True)
                self.batches_failed += 1
                log_exception(
                    logger,
                    e,
                    "Failed to persist batch, routing to DLQ",
                    include_traceback=False,
                    batch_size=len(batch),
                )
                await self._route_to_dlq(batch, e)
                return

            self.batches_flushed += 1
            self.events_persisted += len(batch)
            self.metrics.record_persisted(len(batch))

    async def _route_to_dlq(self, batch: list[str], error: Exception) -> None:
        sent = 0
        for payload in batch:
            try:
                await self.broker.publish(self.dlq_topic, payload)
                sent += 1
                self.events_dlq += 1
                self.metrics.record_dlq()
            except Exception as e:
                log_exception(
                    logger,
                    e,
                    "Failed to publish event to DLQ topic",
                    include_traceback=False,
                    dlq_topic=self.dlq_topic,
                )

            try:
                await self.store.save_failed(FailedEvent.from_error(payload, error))
            except Exception as e:
                # Event may still be on the DLQ topic without a failure record
                logger.error(
                    "Failed to save failed-event record",
                    extra={"error_type": error_type_name(e), "error_message": str(e)},
                )

        logger.info(
            f"Sent {sent} failed events to DLQ topic",
            extra={"batch_size": len(batch), "events_dlq": sent, "dlq_topic": self.dlq_topic},
        )


__all__ = ["EventPersistenceService"]
