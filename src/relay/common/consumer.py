"""Subscribing side of the Kafka adapter."""

import asyncio
import logging
from typing import Any

from aiokafka import AIOKafkaConsumer
from aiokafka.structs import ConsumerRecord

from config.config import KafkaSettings
from core.logging import set_log_context
from core.utils import generate_worker_id
from relay.common.kafka_config import build_kafka_security_config
from relay.common.types import PayloadHandler, ReceivedMessage

logger = logging.getLogger(__name__)

# Consumer settings passed through to aiokafka only when configured
PASSTHROUGH_KEYS = ("heartbeat_interval_ms", "fetch_min_bytes", "fetch_max_wait_ms")


class TopicConsumer:
    """Feeds every record of one topic to a payload handler, one at a time.

    Offsets are committed manually after each record, whatever the handler
    did. Handlers route their own failures (drop counters, DLQ, failure
    records), so an exception is logged and the record is not redelivered.
    """

    poll_timeout_ms = 1000
    assignment_poll_seconds = 0.5
    error_pause_seconds = 1.0

    def __init__(
        self,
        config: KafkaSettings,
        topic: str,
        group_id: str,
        message_handler: PayloadHandler,
        instance_id: str | None = None,
    ):
        if not topic:
            raise ValueError("A topic must be specified")

        self.config = config
        self.topic = topic
        self.group_id = group_id
        self.instance_id = instance_id
        self.message_handler = message_handler
        self.client_id = f"{group_id}-{instance_id}" if instance_id else group_id
        self.worker_id = generate_worker_id(self.client_id)
        self._consumer: AIOKafkaConsumer | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running and self._consumer is not None

    def _build_kafka_config(self) -> dict[str, Any]:
        defaults = self.config.consumer_defaults
        options: dict[str, Any] = {
            "bootstrap_servers": self.config.bootstrap_servers,
            "group_id": self.group_id,
            "client_id": self.client_id,
            "enable_auto_commit": False,
            "auto_offset_reset": defaults.get("auto_offset_reset", "earliest"),
            "max_poll_records": defaults.get("max_poll_records", 100),
            "max_poll_interval_ms": defaults.get("max_poll_interval_ms", 300000),
            "session_timeout_ms": defaults.get("session_timeout_ms", 30000),
            "request_timeout_ms": self.config.request_timeout_ms,
            "metadata_max_age_ms": self.config.metadata_max_age_ms,
            "connections_max_idle_ms": self.config.connections_max_idle_ms,
        }
        options.update({key: defaults[key] for key in PASSTHROUGH_KEYS if key in defaults})
        options.update(build_kafka_security_config(self.config))
        return options

    async def start(self) -> None:
        """Join the group and consume until stopped or cancelled."""
        if self._running:
            logger.warning("Consumer already running", extra={"worker_id": self.worker_id})
            return

        self._consumer = AIOKafkaConsumer(self.topic, **self._build_kafka_config())
        await self._consumer.start()
        self._running = True
        set_log_context(worker_id=self.worker_id)
        logger.info(
            "Consumer joined group",
            extra={"topic": self.topic, "group_id": self.group_id, "worker_id": self.worker_id},
        )

        try:
            if await self._await_assignment():
                await self._consume()
        except asyncio.CancelledError:
            logger.info("Consumer cancelled", extra={"worker_id": self.worker_id})
            raise
        finally:
            self._running = False

    async def stop(self) -> None:
        consumer, self._consumer = self._consumer, None
        self._running = False
        if consumer is None:
            return

        await consumer.stop()
        logger.info("Consumer left group", extra={"group_id": self.group_id, "worker_id": self.worker_id})

    async def _await_assignment(self) -> bool:
        announced = False
        while self.is_running:
            partitions = self._consumer.assignment()
            if partitions:
                logger.info(
                    "Partitions assigned",
                    extra={
                        "worker_id": self.worker_id,
                        "partitions": sorted(f"{tp.topic}:{tp.partition}" for tp in partitions),
                    },
                )
                return True
            if not announced:
                logger.info("Waiting for partition assignment", extra={"group_id": self.group_id})
                announced = True
            await asyncio.sleep(self.assignment_poll_seconds)
        return False

    async def _consume(self) -> None:
        while self.is_running:
            try:
                batches = await self._consumer.getmany(timeout_ms=self.poll_timeout_ms)
            except Exception as e:
                logger.error("Fetch failed", extra={"topic": self.topic, "error": str(e)}, exc_info=True)
                await asyncio.sleep(self.error_pause_seconds)
                continue

            for records in batches.values():
                for record in records:
                    if not self.is_running:
                        return
                    await self._handle_record(record)

    async def _handle_record(self, record: ConsumerRecord) -> None:
        message = ReceivedMessage.from_record(record)
        try:
            await self.message_handler(message.payload)
        except Exception as e:
            logger.error(
                "Handler failed, committing past record",
                extra={"position": message.position, "error_type": type(e).__name__},
                exc_info=True,
            )

        if self._consumer is None:
            return
        try:
            await self._consumer.commit()
        except Exception as e:
            # Uncommitted offsets are redelivered after the rebalance
            logger.warning(
                "Commit failed, continuing",
                extra={"position": message.position, "error_type": type(e).__name__, "error": str(e)},
            )


__all__ = ["TopicConsumer"]
