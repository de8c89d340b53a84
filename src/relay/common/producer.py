"""Publishing side of the Kafka adapter."""

import logging
from typing import Any

from aiokafka import AIOKafkaProducer

from config.config import KafkaSettings
from relay.common.kafka_config import build_kafka_security_config
from relay.common.types import ProduceResult

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_ID = "change-event-relay"
DEFAULT_MAX_REQUEST_SIZE = 10 * 1024 * 1024


def _producer_options(settings: KafkaSettings, client_id: str) -> dict[str, Any]:
    defaults = settings.producer_defaults

    acks = defaults.get("acks", "all")
    if isinstance(acks, str) and acks.isdigit():
        acks = int(acks)
    idempotent = bool(defaults.get("enable_idempotence", True))
    if idempotent and acks != "all":
        # aiokafka rejects idempotence with anything weaker than acks=all
        logger.warning(
            "enable_idempotence set, publishing with acks='all'",
            extra={"configured_acks": acks},
        )
        acks = "all"

    compression = defaults.get("compression_type")

    options: dict[str, Any] = {
        "bootstrap_servers": settings.bootstrap_servers,
        "client_id": client_id,
        "acks": acks,
        "enable_idempotence": idempotent,
        "request_timeout_ms": settings.request_timeout_ms,
        "metadata_max_age_ms": settings.metadata_max_age_ms,
        "connections_max_idle_ms": settings.connections_max_idle_ms,
        "retry_backoff_ms": defaults.get("retry_backoff_ms", 1000),
        "linger_ms": defaults.get("linger_ms", 0),
        "max_request_size": defaults.get("max_request_size", DEFAULT_MAX_REQUEST_SIZE),
        "compression_type": None if compression in (None, "none") else compression,
    }
    if "batch_size" in defaults:
        options["max_batch_size"] = defaults["batch_size"]

    options.update(build_kafka_security_config(settings))
    return options


class TopicProducer:
    """Publishes text payloads, without keys, and waits for the broker ack."""

    def __init__(self, config: KafkaSettings, client_id: str = DEFAULT_CLIENT_ID):
        self.config = config
        self.client_id = client_id
        self._producer: AIOKafkaProducer | None = None

    @property
    def is_started(self) -> bool:
        return self._producer is not None

    def _build_kafka_config(self) -> dict[str, Any]:
        return _producer_options(self.config, self.client_id)

    async def start(self) -> None:
        if self._producer is not None:
            logger.warning("Producer already started")
            return

        options = self._build_kafka_config()
        producer = AIOKafkaProducer(**options)
        await producer.start()
        self._producer = producer

        logger.info(
            "Producer connected",
            extra={
                "bootstrap_servers": self.config.bootstrap_servers,
                "client_id": self.client_id,
                "acks": options["acks"],
            },
        )

    async def stop(self) -> None:
        """Flush and close. Errors are logged so they never mask a shutdown cause."""
        producer, self._producer = self._producer, None
        if producer is None:
            return

        try:
            await producer.flush()
            await producer.stop()
        except Exception as e:
            logger.error("Producer did not close cleanly", extra={"error": str(e)}, exc_info=True)
        else:
            logger.info("Producer closed", extra={"client_id": self.client_id})

    async def send(self, topic: str, payload: str) -> ProduceResult:
        if self._producer is None:
            raise RuntimeError("Producer not started")

        value = payload.encode("utf-8")
        try:
            metadata = await self._producer.send_and_wait(topic, value=value)
        except Exception as e:
            logger.error(
                "Publish failed",
                extra={"topic": topic, "payload_size": len(value), "error": str(e)},
                exc_info=True,
            )
            raise

        return ProduceResult(metadata.topic, metadata.partition, metadata.offset)


__all__ = ["TopicProducer"]
