"""Relay configuration: one YAML file, environment expansion, typed sections.

Each top-level YAML section maps to a settings dataclass. String values
such as ``${VAR}`` or ``${VAR:-default}`` are expanded from the
environment before the dataclasses are built, so numeric settings may
arrive as strings and are coerced to their declared type.
"""

import json
import logging
import os
import re
import sys
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"

SECTIONS = ("kafka", "stream", "persistence", "dlq", "storage", "observability", "tracing")

# Applied after YAML expansion; a non-empty variable replaces the YAML value
ENV_OVERRIDES = {
    "KAFKA_BOOTSTRAP_SERVERS": ("kafka", "bootstrap_servers"),
    "KAFKA_SECURITY_PROTOCOL": ("kafka", "security_protocol"),
    "RELAY_MAIN_TOPIC": ("kafka", "main_topic"),
    "RELAY_DLQ_TOPIC": ("kafka", "dlq_topic"),
    "RELAY_CONSUMER_GROUP": ("kafka", "consumer_group"),
    "RELAY_DLQ_CONSUMER_GROUP": ("kafka", "dlq_consumer_group"),
    "STREAM_URL": ("stream", "url"),
    "RELAY_QUEUE_CAPACITY": ("persistence", "queue_capacity"),
    "RELAY_BATCH_SIZE": ("persistence", "batch_size"),
    "RELAY_FLUSH_INTERVAL_MS": ("persistence", "flush_interval_ms"),
    "RELAY_STORAGE_BACKEND": ("storage", "backend"),
    "MONGODB_URI": ("storage", "mongodb_uri"),
    "MONGODB_DATABASE": ("storage", "database"),
    "METRICS_PORT": ("observability", "metrics_port"),
    "RELAY_TRACING_ENABLED": ("tracing", "enabled"),
    "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT": ("tracing", "endpoint"),
    "OTEL_SERVICE_NAME": ("tracing", "service_name"),
}

_ENV_REF = re.compile(r"\$\{(?P<name>[^}:]+)(?::-(?P<default>[^}]*))?\}")


def load_yaml(path: Path) -> dict[str, Any]:
    """Parsed YAML mapping, or {} for a missing or empty file."""
    if not path.exists():
        return {}
    with path.open(encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Expand ``${VAR}`` / ``${VAR:-default}`` in every string of ``data``.

    An unset variable without a default is left as written.
    """
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    if not isinstance(data, str):
        return data

    def substitute(ref: re.Match) -> str:
        fallback = ref.group("default")
        return os.environ.get(ref.group("name"), ref.group(0) if fallback is None else fallback)

    return _ENV_REF.sub(substitute, data)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    sections = {name: dict(data.get(name) or {}) for name in SECTIONS}
    for variable, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(variable)
        if value:
            sections[section][key] = value
    return sections


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """New dict with ``overlay`` merged into ``base``, recursing into nested dicts."""
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


_SCALAR_CASTS = {int: int, float: float, bool: _as_bool}


class _Section:
    """Coerces each scalar field to its declared type after init."""

    def __post_init__(self):
        for f in fields(self):
            cast = _SCALAR_CASTS.get(f.type)
            if cast is not None:
                setattr(self, f.name, cast(getattr(self, f.name)))


@dataclass
class KafkaSettings(_Section):
    """Broker connection, topics and consumer groups. Times in milliseconds."""

    bootstrap_servers: str = ""
    security_protocol: str = "PLAINTEXT"
    sasl_mechanism: str = "PLAIN"
    sasl_plain_username: str = ""
    sasl_plain_password: str = ""
    request_timeout_ms: int = 120000
    metadata_max_age_ms: int = 300000
    connections_max_idle_ms: int = 540000
    consumer_defaults: dict[str, Any] = field(default_factory=dict)
    producer_defaults: dict[str, Any] = field(default_factory=dict)
    main_topic: str = "change-events"
    dlq_topic: str = ""
    consumer_group: str = "change-event-relay"
    dlq_consumer_group: str = ""
    create_dlq_topic: bool = True
    dlq_topic_partitions: int = 1
    dlq_topic_replication_factor: int = 1

    def __post_init__(self):
        super().__post_init__()
        if not self.dlq_consumer_group:
            self.dlq_consumer_group = f"{self.consumer_group}-dlq"


@dataclass
class StreamSettings(_Section):
    url: str = ""
    max_retry_attempts: int = 10
    initial_backoff_seconds: float = 1.0
    max_backoff_minutes: float = 1.0
    jitter: float = 0.0
    sock_read_timeout_seconds: float = 300.0
    connect_timeout_seconds: float = 30.0
    user_agent: str = "change-event-relay/0.1"


@dataclass
class PersistenceSettings(_Section):
    """Ingestion buffer and batch writer."""

    queue_capacity: int = 10000
    batch_size: int = 100
    flush_interval_ms: int = 1000
    poll_timeout_ms: int = 100
    shutdown_timeout_seconds: float = 30.0


@dataclass
class DlqSettings(_Section):
    max_retry_count: int = 3
    consumer_instances: int = 1


@dataclass
class StorageSettings(_Section):
    backend: str = "memory"
    mongodb_uri: str = "mongodb://localhost:27017"
    database: str = "relay"
    events_collection: str = "change_events"
    failed_events_collection: str = "failed_events"


@dataclass
class ObservabilitySettings(_Section):
    metrics_port: int = 0
    stats_interval_seconds: float = 60.0
    log_dir: str = "logs"
    json_logs: bool = True
    log_to_stdout: bool = False


@dataclass
class TracingSettings(_Section):
    """OTLP/HTTP span export. Disabled unless ``enabled`` is set."""

    enabled: bool = False
    endpoint: str = "http://localhost:4318/v1/traces"
    service_name: str = "change-event-relay"
    sample_ratio: float = 1.0


def _at_least(path: str, value: float, minimum: float) -> None:
    if value < minimum:
        raise ValueError(f"{path} must be >= {minimum}, got {value}")


def _positive(path: str, value: float) -> None:
    if value <= 0:
        raise ValueError(f"{path} must be > 0, got {value}")


def _between(path: str, value: float, low: float, high: float) -> None:
    if not low <= value <= high:
        raise ValueError(f"{path} must be between {low} and {high}, got {value}")


def _one_of(path: str, value: Any, choices: list[Any]) -> None:
    if value not in choices:
        raise ValueError(f"{path} must be one of {choices}, got '{value}'")


@dataclass
class RelayConfig:
    """Complete relay configuration, one attribute per YAML section."""

    kafka: KafkaSettings = field(default_factory=KafkaSettings)
    stream: StreamSettings = field(default_factory=StreamSettings)
    persistence: PersistenceSettings = field(default_factory=PersistenceSettings)
    dlq: DlqSettings = field(default_factory=DlqSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    observability: ObservabilitySettings = field(default_factory=ObservabilitySettings)
    tracing: TracingSettings = field(default_factory=TracingSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RelayConfig":
        """Build from section dicts; an unknown key in a section raises TypeError."""
        return cls(**{f.name: f.default_factory(**(data.get(f.name) or {})) for f in fields(cls)})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def validate(self, require_stream: bool = False) -> None:
        """Raise ValueError on the first invalid setting.

        ``stream.url`` is only required when the stream connector will run.
        """
        self._validate_kafka()
        self._validate_stream(require_stream)

        persistence = self.persistence
        _at_least("persistence.queue_capacity", persistence.queue_capacity, 1)
        _at_least("persistence.batch_size", persistence.batch_size, 1)
        _positive("persistence.flush_interval_ms", persistence.flush_interval_ms)
        _positive("persistence.poll_timeout_ms", persistence.poll_timeout_ms)
        _positive("persistence.shutdown_timeout_seconds", persistence.shutdown_timeout_seconds)

        _at_least("dlq.max_retry_count", self.dlq.max_retry_count, 1)
        _between("dlq.consumer_instances", self.dlq.consumer_instances, 1, 32)

        _one_of("storage.backend", self.storage.backend, ["memory", "mongodb"])
        if self.storage.backend == "mongodb" and not self.storage.mongodb_uri:
            raise ValueError("storage.mongodb_uri is required when storage.backend is 'mongodb'")

        _between("observability.metrics_port", self.observability.metrics_port, 0, 65535)
        _positive("observability.stats_interval_seconds", self.observability.stats_interval_seconds)

        _between("tracing.sample_ratio", self.tracing.sample_ratio, 0, 1)
        if self.tracing.enabled and not self.tracing.endpoint:
            raise ValueError("tracing.endpoint is required when tracing.enabled is true")

    def _validate_kafka(self) -> None:
        kafka = self.kafka
        for name in ("bootstrap_servers", "main_topic", "dlq_topic", "consumer_group"):
            if not getattr(kafka, name):
                raise ValueError(f"kafka.{name} is required")
        if kafka.dlq_topic == kafka.main_topic:
            raise ValueError("kafka.dlq_topic must differ from kafka.main_topic")
        _at_least("kafka.dlq_topic_partitions", kafka.dlq_topic_partitions, 1)
        _at_least("kafka.dlq_topic_replication_factor", kafka.dlq_topic_replication_factor, 1)
        _one_of(
            "kafka.security_protocol",
            kafka.security_protocol,
            ["PLAINTEXT", "SSL", "SASL_PLAINTEXT", "SASL_SSL"],
        )

        consumer = kafka.consumer_defaults
        session = consumer.get("session_timeout_ms")
        heartbeat = consumer.get("heartbeat_interval_ms")
        max_poll = consumer.get("max_poll_interval_ms")
        if session is not None and heartbeat is not None and heartbeat * 3 >= session:
            raise ValueError(
                f"kafka.consumer_defaults: heartbeat_interval_ms ({heartbeat}) must be below "
                f"a third of session_timeout_ms ({session})"
            )
        if session is not None and max_poll is not None and session >= max_poll:
            raise ValueError(
                f"kafka.consumer_defaults: session_timeout_ms ({session}) must be < "
                f"max_poll_interval_ms ({max_poll})"
            )
        if "max_poll_records" in consumer:
            _at_least("kafka.consumer_defaults.max_poll_records", consumer["max_poll_records"], 1)
        if "auto_offset_reset" in consumer:
            _one_of(
                "kafka.consumer_defaults.auto_offset_reset",
                consumer["auto_offset_reset"],
                ["earliest", "latest", "none"],
            )

        producer = kafka.producer_defaults
        if "acks" in producer:
            _one_of("kafka.producer_defaults.acks", producer["acks"], ["0", "1", "all", 0, 1])
        if "compression_type" in producer:
            _one_of(
                "kafka.producer_defaults.compression_type",
                producer["compression_type"],
                ["none", "gzip", "snappy", "lz4", "zstd"],
            )
        if "linger_ms" in producer:
            _at_least("kafka.producer_defaults.linger_ms", producer["linger_ms"], 0)

    def _validate_stream(self, require_stream: bool) -> None:
        stream = self.stream
        if require_stream and not stream.url:
            raise ValueError("stream.url is required")
        _at_least("stream.max_retry_attempts", stream.max_retry_attempts, 1)
        _positive("stream.initial_backoff_seconds", stream.initial_backoff_seconds)
        _at_least("stream.jitter", stream.jitter, 0)
        _positive("stream.sock_read_timeout_seconds", stream.sock_read_timeout_seconds)
        _positive("stream.connect_timeout_seconds", stream.connect_timeout_seconds)
        if stream.max_backoff_minutes * 60 < stream.initial_backoff_seconds:
            raise ValueError(
                f"stream.max_backoff_minutes ({stream.max_backoff_minutes}) is shorter than "
                f"stream.initial_backoff_seconds ({stream.initial_backoff_seconds})"
            )


def load_config(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    validate: bool = True,
) -> RelayConfig:
    """Load the relay configuration.

    Precedence, highest first: ``overrides``, ENV_OVERRIDES, the YAML file
    (after ``${VAR}`` expansion), dataclass defaults.
    """
    path = config_path or DEFAULT_CONFIG_FILE
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    logger.info("Loading configuration from %s", path)
    raw = _expand_env_vars(load_yaml(path))
    if "kafka" not in raw:
        raise ValueError(f"Invalid config file {path}: missing 'kafka:' section")

    ignored = sorted(set(raw) - set(SECTIONS))
    if ignored:
        logger.warning("Ignoring unknown config sections: %s", ", ".join(ignored))

    data = _apply_env_overrides(raw)
    if overrides:
        data = _deep_merge(data, overrides)

    try:
        config = RelayConfig.from_dict(data)
    except TypeError as e:
        raise ValueError(f"Invalid config file {path}: {e}") from e

    logger.debug(
        "Configuration loaded: bootstrap=%s main=%s dlq=%s storage=%s",
        config.kafka.bootstrap_servers,
        config.kafka.main_topic,
        config.kafka.dlq_topic,
        config.storage.backend,
    )

    if validate:
        config.validate()
    return config


_relay_config: RelayConfig | None = None


def get_config() -> RelayConfig:
    """Process-wide config, loaded from the default file on first use."""
    global _relay_config
    if _relay_config is None:
        _relay_config = load_config()
    return _relay_config


def set_config(config: RelayConfig) -> None:
    global _relay_config
    _relay_config = config


def reset_config() -> None:
    global _relay_config
    _relay_config = None


def _redacted(config: RelayConfig) -> dict[str, Any]:
    data = config.to_dict()
    if data["kafka"]["sasl_plain_password"]:
        data["kafka"]["sasl_plain_password"] = "***"
    return data


def _cli_main() -> int:
    """``python -m config.config``: validate or print the effective configuration."""
    import argparse

    parser = argparse.ArgumentParser(description="Check the change-event relay configuration")
    parser.add_argument("--config", type=Path, help="YAML file (default: src/config/config.yaml)")
    parser.add_argument("--validate", action="store_true", help="Load and validate, report the result")
    parser.add_argument("--show-merged", action="store_true", help="Print the effective configuration")
    parser.add_argument("--json", action="store_true", help="Machine-readable output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    if not (args.validate or args.show_merged):
        parser.print_help()
        return 0

    try:
        config = load_config(config_path=args.config)
    except (FileNotFoundError, ValueError) as e:
        if args.json:
            print(json.dumps({"valid": False, "error": str(e)}))
        else:
            print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    effective = _redacted(config)
    if args.json:
        report: dict[str, Any] = {"valid": True}
        if args.show_merged:
            report["config"] = effective
        print(json.dumps(report, indent=2))
    else:
        if args.validate:
            print("Configuration is valid")
        if args.show_merged:
            print(yaml.safe_dump(effective, default_flow_style=False, sort_keys=False))
    return 0


if __name__ == "__main__":
    sys.exit(_cli_main())
