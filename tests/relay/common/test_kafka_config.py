"""Tests for build_kafka_security_config."""

import ssl

from config.config import KafkaSettings
from relay.common.kafka_config import build_kafka_security_config


class TestBuildKafkaSecurityConfig:
    def test_plaintext(self):
        assert build_kafka_security_config(KafkaSettings(security_protocol="PLAINTEXT")) == {}

    def test_ssl(self):
        cfg = build_kafka_security_config(KafkaSettings(security_protocol="SSL"))
        assert cfg["security_protocol"] == "SSL"
        assert isinstance(cfg["ssl_context"], ssl.SSLContext)
        assert "sasl_mechanism" not in cfg

    def test_sasl_ssl_scram(self):
        cfg = build_kafka_security_config(
            KafkaSettings(
                security_protocol="SASL_SSL",
                sasl_mechanism="SCRAM-SHA-512",
                sasl_plain_username="relay",
                sasl_plain_password="pw",
            )
        )
        assert cfg["sasl_mechanism"] == "SCRAM-SHA-512"
        assert cfg["sasl_plain_username"] == "relay"
        assert cfg["sasl_plain_password"] == "pw"
        assert "ssl_context" in cfg

    def test_sasl_other_mechanism_no_credentials(self):
        cfg = build_kafka_security_config(
            KafkaSettings(security_protocol="SASL_PLAINTEXT", sasl_mechanism="GSSAPI")
        )
        assert cfg["sasl_mechanism"] == "GSSAPI"
        assert "sasl_plain_username" not in cfg
        assert "ssl_context" not in cfg
