"""
Dead-letter retry consumer.

Re-persists payloads delivered on the DLQ topic and keeps the FailedEvent
record for each payload up to date:

    persist ok   -> delete the FailedEvent with the same payload (if any)
    persist fail -> retry_count + 1 on the existing record, or create one
                    with retry_count=0

Records are keyed by exact payload equality. Reaching max_retry_count is
only reported; further deliveries of the same payload are still retried.

The find -> increment -> save sequence is not atomic. Two concurrent
deliveries of the same payload can both read retry_count=k and both write
k+1, so the stored count can lag the real number of attempts.
"""

import logging

from opentelemetry.trace import SpanKind

from core.errors import error_type_name
from core.logging import log_with_context
from relay.common.metrics import NullMetrics, RelayMetrics
from relay.common.tracing import mark_failed, traced
from relay.storage import EventStore, FailedEvent

logger = logging.getLogger(__name__)

MAX_RETRY_COUNT = 3


class DeadLetterRetryConsumer:
    """Handler for the dead-letter topic. consume() never raises."""

    def __init__(
        self,
        store: EventStore,
        metrics: RelayMetrics | None = None,
        max_retry_count: int = MAX_RETRY_COUNT,
    ):
        self.store = store
        self.metrics = metrics or NullMetrics()
        self.max_retry_count = max_retry_count

        self.reprocessed = 0
        self.failed_attempts = 0
        self.exhausted = 0

    async def consume(self, payload: str) -> None:
        logger.debug("Processing DLQ event", extra={"payload_size": len(payload)})

        attributes = {"messaging.system": "kafka", "messaging.message.body.size": len(payload)}
        with traced("dlq.event.reprocess", SpanKind.CONSUMER, attributes) as span:
            try:
                await self.store.insert(payload)
            except Exception as e:
                mark_failed(span, e)
                self.failed_attempts += 1
                self.metrics.record_reprocessed(success=False)
                logger.error(
                    "Failed to reprocess DLQ event",
                    extra={"error_type": error_type_name(e), "error_message": str(e)},
                )
                await self._record_failure(payload, e)
                return

            self.reprocessed += 1
            self.metrics.record_reprocessed(success=True)
            logger.debug("Successfully reprocessed DLQ event")
            await self._clear_failure(payload)

    async def _clear_failure(self, payload: str) -> None:
        try:
            record = await self.store.find_failed_by_payload(payload)
            if record is not None:
                await self.store.delete_failed(record)
                logger.debug(
                    "Removed reprocessed event from failed events",
                    extra={"failed_event_id": record.id, "retry_count": record.retry_count},
                )
        except Exception as e:
            logger.error(
                "Failed to remove failed-event record after reprocessing",
                extra={"error_type": error_type_name(e), "error_message": str(e)},
            )

    async def _record_failure(self, payload: str, error: Exception) -> None:
        try:
            existing = await self.store.find_failed_by_payload(payload)
            if existing is None:
                record = FailedEvent.from_error(payload, error)
            else:
                record = existing.record_retry_failure(error)
                if record.retry_count >= self.max_retry_count:
                    self.exhausted += 1
                    self.metrics.record_exhausted()
                    log_with_context(
                        logger,
                        logging.ERROR,
                        "Event exceeded max retry count, marking as permanently failed",
                        failed_event_id=record.id,
                        retry_count=record.retry_count,
                        max_retry_count=self.max_retry_count,
                    )
            await self.store.save_failed(record)
        except Exception as e:
            logger.error(
                "Failed to save retry failure",
                extra={"error_type": error_type_name(e), "error_message": str(e)},
            )


__all__ = ["DeadLetterRetryConsumer", "MAX_RETRY_COUNT"]
