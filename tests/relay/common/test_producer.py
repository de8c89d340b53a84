"""
Unit tests for TopicProducer.

Test Coverage:
    - aiokafka config construction (acks/idempotence, compression, security)
    - Start/stop lifecycle and duplicate start
    - Sending text payloads as UTF-8 bytes
    - Error propagation on send failure

No infrastructure required - aiokafka mocked.
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from config.config import KafkaSettings
from relay.common.producer import TopicProducer
from relay.common.types import ProduceResult


def _make_settings(**overrides) -> KafkaSettings:
    overrides.setdefault("bootstrap_servers", "localhost:9092")
    return KafkaSettings(**overrides)


def _make_kafka_mock():
    mock = Mock()
    mock.start = AsyncMock()
    mock.stop = AsyncMock()
    mock.flush = AsyncMock()
    mock.send_and_wait = AsyncMock(
        return_value=Mock(topic="change-events", partition=1, offset=99)
    )
    return mock


class TestBuildKafkaConfig:
    def test_defaults(self):
        cfg = TopicProducer(_make_settings())._build_kafka_config()

        assert cfg["bootstrap_servers"] == "localhost:9092"
        assert cfg["acks"] == "all"
        assert cfg["enable_idempotence"] is True
        assert cfg["max_request_size"] == 10 * 1024 * 1024
        assert "security_protocol" not in cfg

    def test_idempotence_forces_acks_all(self):
        producer = TopicProducer(_make_settings(producer_defaults={"acks": "1"}))
        assert producer._build_kafka_config()["acks"] == "all"

    def test_acks_kept_without_idempotence(self):
        producer = TopicProducer(
            _make_settings(producer_defaults={"acks": "1", "enable_idempotence": False})
        )
        assert producer._build_kafka_config()["acks"] == 1

    def test_optional_settings(self):
        producer = TopicProducer(
            _make_settings(
                producer_defaults={"linger_ms": 5, "batch_size": 32768, "compression_type": "none"}
            )
        )
        cfg = producer._build_kafka_config()
        assert cfg["linger_ms"] == 5
        assert cfg["max_batch_size"] == 32768
        assert cfg["compression_type"] is None

    def test_sasl_settings_included(self):
        producer = TopicProducer(
            _make_settings(
                security_protocol="SASL_PLAINTEXT",
                sasl_plain_username="relay",
                sasl_plain_password="pw",
            )
        )
        cfg = producer._build_kafka_config()
        assert cfg["security_protocol"] == "SASL_PLAINTEXT"
        assert cfg["sasl_mechanism"] == "PLAIN"
        assert cfg["sasl_plain_username"] == "relay"


class TestLifecycle:
    async def test_start_and_stop(self):
        kafka_mock = _make_kafka_mock()
        with patch("relay.common.producer.AIOKafkaProducer", return_value=kafka_mock):
            producer = TopicProducer(_make_settings())
            await producer.start()
            assert producer.is_started

            await producer.stop()

        kafka_mock.start.assert_awaited_once()
        kafka_mock.flush.assert_awaited_once()
        kafka_mock.stop.assert_awaited_once()
        assert not producer.is_started

    async def test_duplicate_start_ignored(self):
        with patch(
            "relay.common.producer.AIOKafkaProducer", return_value=_make_kafka_mock()
        ) as cls:
            producer = TopicProducer(_make_settings())
            await producer.start()
            await producer.start()

        cls.assert_called_once()

    async def test_stop_without_start(self):
        producer = TopicProducer(_make_settings())
        await producer.stop()
        assert not producer.is_started

    async def test_stop_swallows_errors(self):
        kafka_mock = _make_kafka_mock()
        kafka_mock.stop.side_effect = RuntimeError("broker gone")
        with patch("relay.common.producer.AIOKafkaProducer", return_value=kafka_mock):
            producer = TopicProducer(_make_settings())
            await producer.start()
            await producer.stop()

        assert producer._producer is None


class TestSend:
    async def test_requires_start(self):
        producer = TopicProducer(_make_settings())
        with pytest.raises(RuntimeError, match="not started"):
            await producer.send("change-events", "{}")

    async def test_sends_utf8_bytes(self):
        kafka_mock = _make_kafka_mock()
        with patch("relay.common.producer.AIOKafkaProducer", return_value=kafka_mock):
            producer = TopicProducer(_make_settings())
            await producer.start()
            result = await producer.send("change-events", '{"title": "Zürich"}')

        kafka_mock.send_and_wait.assert_awaited_once_with(
            "change-events", value='{"title": "Zürich"}'.encode("utf-8")
        )
        assert result == ProduceResult(topic="change-events", partition=1, offset=99)

    async def test_send_failure_propagates(self):
        kafka_mock = _make_kafka_mock()
        kafka_mock.send_and_wait.side_effect = ConnectionError("no leader")
        with patch("relay.common.producer.AIOKafkaProducer", return_value=kafka_mock):
            producer = TopicProducer(_make_settings())
            await producer.start()
            with pytest.raises(ConnectionError):
                await producer.send("change-events", "{}")
