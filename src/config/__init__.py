"""Relay configuration package.

Configuration is loaded from a single YAML file (default: src/config/config.yaml)
with ``${VAR}`` / ``${VAR:-default}`` environment expansion.

Main Functions
--------------

    - load_config(): Load RelayConfig from YAML, apply env overrides, validate
    - get_config(): Get or load singleton config instance
    - set_config(): Replace the singleton (tests)
    - reset_config(): Reset singleton config instance

Usage Examples
--------------

    >>> from config import load_config
    >>> config = load_config()
    >>> config.kafka.dlq_topic
    'change-events-dlq'
    >>> config.persistence.batch_size
    100

Configuration Priority
---------------------

Settings are merged in the following priority (highest to lowest):

1. ``overrides`` passed to load_config()
2. Environment variables listed in ``config.config.ENV_OVERRIDES``
3. YAML configuration file (after ${VAR} expansion)
4. Dataclass defaults
"""

from config.config import (
    DlqSettings,
    KafkaSettings,
    ObservabilitySettings,
    PersistenceSettings,
    RelayConfig,
    StorageSettings,
    StreamSettings,
    TracingSettings,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    "RelayConfig",
    "KafkaSettings",
    "StreamSettings",
    "PersistenceSettings",
    "DlqSettings",
    "StorageSettings",
    "ObservabilitySettings",
    "TracingSettings",
]
