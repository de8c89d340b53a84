"""Kafka implementation of the Broker protocol."""

import asyncio
import logging

from aiokafka.admin import AIOKafkaAdminClient, NewTopic
from aiokafka.errors import TopicAlreadyExistsError, for_code

from config.config import KafkaSettings
from core.errors import BrokerError
from relay.common.consumer import TopicConsumer
from relay.common.kafka_config import build_kafka_security_config
from relay.common.producer import TopicProducer
from relay.common.types import PayloadHandler

logger = logging.getLogger(__name__)


class KafkaSubscription:
    """A TopicConsumer running on its own task."""

    def __init__(self, consumer: TopicConsumer):
        self.consumer = consumer
        self.topic = consumer.topic
        self.group_id = consumer.group_id
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        self._task = asyncio.create_task(
            self.consumer.start(), name=f"consumer-{self.consumer.worker_id}"
        )
        self._task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Subscription task exited with error",
                extra={"topic": self.topic, "group_id": self.group_id, "error": str(exc)},
            )

    async def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception:
                # Already reported by _on_done
                pass
        self._task = None
        await self.consumer.stop()


class KafkaBroker:
    """Broker backed by one shared producer and one consumer per subscription."""

    def __init__(self, config: KafkaSettings):
        self.config = config
        self.producer = TopicProducer(config)
        self._subscriptions: list[KafkaSubscription] = []

    async def start(self) -> None:
        if self.config.create_dlq_topic:
            await self.ensure_topic(
                self.config.dlq_topic,
                self.config.dlq_topic_partitions,
                self.config.dlq_topic_replication_factor,
            )
        await self.producer.start()

    async def ensure_topic(self, topic: str, partitions: int, replication_factor: int) -> bool:
        """Create ``topic`` unless it already exists. Returns True if it was created.

        Failures other than "already exists" are logged; the broker's
        auto-creation, if enabled, still applies on first publish.
        """
        admin = AIOKafkaAdminClient(
            bootstrap_servers=self.config.bootstrap_servers,
            client_id="change-event-relay-admin",
            request_timeout_ms=self.config.request_timeout_ms,
            **build_kafka_security_config(self.config),
        )
        try:
            await admin.start()
            response = await admin.create_topics(
                [NewTopic(topic, num_partitions=partitions, replication_factor=replication_factor)]
            )
            for topic_error in response.topic_errors:
                if topic_error[1] != 0:
                    raise for_code(topic_error[1])(topic)
        except TopicAlreadyExistsError:
            logger.debug("Topic already exists", extra={"topic": topic})
            return False
        except Exception as e:
            logger.warning(
                "Could not create topic",
                extra={"topic": topic, "error_type": type(e).__name__, "error": str(e)},
            )
            return False
        finally:
            await admin.close()

        logger.info(
            "Created topic",
            extra={"topic": topic, "partitions": partitions, "replication_factor": replication_factor},
        )
        return True

    async def stop(self) -> None:
        for subscription in list(self._subscriptions):
            await subscription.cancel()
        self._subscriptions.clear()
        await self.producer.stop()

    async def publish(self, topic: str, payload: str) -> None:
        try:
            await self.producer.send(topic, payload)
        except RuntimeError:
            raise
        except Exception as e:
            raise BrokerError(
                f"Failed to publish to {topic}",
                cause=e,
                context={"topic": topic},
            ) from e

    async def subscribe(
        self,
        topic: str,
        group_id: str,
        handler: PayloadHandler,
        instance_id: str | None = None,
    ) -> KafkaSubscription:
        consumer = TopicConsumer(
            self.config,
            topic=topic,
            group_id=group_id,
            message_handler=handler,
            instance_id=instance_id,
        )
        subscription = KafkaSubscription(consumer)
        subscription.start()
        self._subscriptions.append(subscription)

        logger.info("Subscribed", extra={"topic": topic, "group_id": group_id})
        return subscription


__all__ = ["KafkaBroker", "KafkaSubscription"]
