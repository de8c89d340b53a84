"""
Unit tests for KafkaBroker.

Test Coverage:
    - Publish delegates to the shared producer
    - Producer failures surface as BrokerError
    - Subscribe starts one consumer task per subscription
    - Stop cancels subscriptions before stopping the producer
    - DLQ topic created at start, existing topic and admin errors tolerated

No infrastructure required - producer and consumer mocked.
"""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest
from aiokafka.errors import KafkaConnectionError, TopicAlreadyExistsError

from config.config import KafkaSettings
from core.errors import BrokerError
from relay.common import Broker
from relay.common.kafka_broker import KafkaBroker, KafkaSubscription


@pytest.fixture
def settings():
    return KafkaSettings(bootstrap_servers="localhost:9092", dlq_topic="change-events-dlq")


@pytest.fixture
def broker(settings):
    broker = KafkaBroker(settings)
    broker.producer = Mock()
    broker.producer.start = AsyncMock()
    broker.producer.stop = AsyncMock()
    broker.producer.send = AsyncMock()
    return broker


def _make_consumer_mock(topic="change-events", group_id="change-event-relay"):
    consumer = Mock()
    consumer.topic = topic
    consumer.group_id = group_id
    consumer.worker_id = "test-worker"
    consumer.stop = AsyncMock()

    async def run_forever():
        await asyncio.Event().wait()

    consumer.start = run_forever
    return consumer


class TestKafkaBroker:
    def test_satisfies_protocol(self, broker):
        assert isinstance(broker, Broker)

    async def test_publish(self, broker):
        await broker.publish("change-events", '{"id": 1}')
        broker.producer.send.assert_awaited_once_with("change-events", '{"id": 1}')

    async def test_publish_failure_wrapped(self, broker):
        broker.producer.send.side_effect = ConnectionError("no leader")

        with pytest.raises(BrokerError) as exc_info:
            await broker.publish("change-events-dlq", "{}")

        assert isinstance(exc_info.value.cause, ConnectionError)
        assert exc_info.value.context == {"topic": "change-events-dlq"}

    async def test_publish_before_start_not_wrapped(self, broker):
        broker.producer.send.side_effect = RuntimeError("Producer not started")
        with pytest.raises(RuntimeError):
            await broker.publish("change-events", "{}")

    async def test_subscribe_and_stop(self, broker):
        consumer = _make_consumer_mock()
        with patch("relay.common.kafka_broker.TopicConsumer", return_value=consumer) as cls:
            subscription = await broker.subscribe(
                "change-events", "change-event-relay", AsyncMock(), instance_id="1"
            )

        assert cls.call_args.kwargs["instance_id"] == "1"
        assert subscription.topic == "change-events"
        assert subscription.group_id == "change-event-relay"

        await broker.stop()

        consumer.stop.assert_awaited_once()
        broker.producer.stop.assert_awaited_once()


class TestKafkaSubscription:
    async def test_cancel_stops_consumer(self):
        consumer = _make_consumer_mock()
        subscription = KafkaSubscription(consumer)
        subscription.start()
        await asyncio.sleep(0)

        await subscription.cancel()

        consumer.stop.assert_awaited_once()
        assert subscription._task is None

    async def test_failed_task_is_logged_and_cancel_still_stops(self, caplog):
        consumer = _make_consumer_mock()

        async def fail():
            raise ConnectionError("bootstrap failed")

        consumer.start = fail
        subscription = KafkaSubscription(consumer)
        subscription.start()
        await asyncio.sleep(0.01)

        assert "Subscription task exited with error" in caplog.text
        await subscription.cancel()
        consumer.stop.assert_awaited_once()


def _make_admin_mock(error_code=0):
    admin = Mock()
    admin.start = AsyncMock()
    admin.close = AsyncMock()
    admin.create_topics = AsyncMock(
        return_value=Mock(topic_errors=[("change-events-dlq", error_code, None)])
    )
    return admin


class TestEnsureTopic:
    async def test_start_creates_dlq_topic(self, broker):
        admin = _make_admin_mock()
        with patch("relay.common.kafka_broker.AIOKafkaAdminClient", return_value=admin):
            await broker.start()

        new_topic = admin.create_topics.await_args.args[0][0]
        assert new_topic.name == "change-events-dlq"
        assert new_topic.num_partitions == 1
        assert new_topic.replication_factor == 1
        admin.close.assert_awaited_once()
        broker.producer.start.assert_awaited_once()

    async def test_existing_topic_is_not_an_error(self, broker):
        admin = _make_admin_mock(error_code=TopicAlreadyExistsError.errno)
        with patch("relay.common.kafka_broker.AIOKafkaAdminClient", return_value=admin):
            created = await broker.ensure_topic("change-events-dlq", 1, 1)

        assert created is False
        admin.close.assert_awaited_once()

    async def test_admin_failure_logged_and_start_continues(self, broker, caplog):
        admin = _make_admin_mock()
        admin.start.side_effect = KafkaConnectionError("no brokers")
        with patch("relay.common.kafka_broker.AIOKafkaAdminClient", return_value=admin):
            await broker.start()

        assert "Could not create topic" in caplog.text
        admin.close.assert_awaited_once()
        broker.producer.start.assert_awaited_once()

    async def test_creation_can_be_disabled(self, settings):
        settings.create_dlq_topic = False
        broker = KafkaBroker(settings)
        broker.producer = Mock(start=AsyncMock())

        with patch("relay.common.kafka_broker.AIOKafkaAdminClient") as admin_cls:
            await broker.start()

        admin_cls.assert_not_called()
        broker.producer.start.assert_awaited_once()
