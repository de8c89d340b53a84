"""JSON (file) and console formatters that include the log context."""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

from core.logging.context import get_log_context
from core.utils.json_serializers import json_serializer

# Structured fields copied from ``extra``, with their coercion (None = as-is)
EXTRA_FIELDS: dict[str, type | None] = {
    "batch_id": None,
    "duration_ms": float,
    "phase": None,
    "error": None,
    "error_type": None,
    "error_message": None,
    "error_category": None,
    "stream_url": None,
    "status_code": int,
    "attempt": int,
    "max_attempts": int,
    "delay_seconds": float,
    "payload_size": int,
    "batch_size": int,
    "queue_size": int,
    "queue_capacity": int,
    "flush_interval_ms": int,
    "events_persisted": int,
    "events_dlq": int,
    "events_dropped": int,
    "retry_count": int,
    "max_retry_count": int,
    "failed_event_id": None,
    "topic": None,
    "dlq_topic": None,
    "group_id": None,
    "client_id": None,
    "position": None,
    "partitions": None,
    "replication_factor": int,
    "bootstrap_servers": None,
    "log_file": None,
    "endpoint": None,
    "sample_ratio": float,
    "cycle": int,
    "events_produced": int,
    "stream_reconnects": int,
    "dlq_reprocessed": int,
    "dlq_exhausted": int,
}

URL_FIELDS = frozenset({"stream_url", "bootstrap_servers", "endpoint"})

_SECRET_QUERY = re.compile(r"([?&])(sig|token|key|secret|password|auth)=[^&]*", re.IGNORECASE)
_USERINFO = re.compile(r"(://)[^/@\s]+@")


def redact_url(url: str) -> str:
    """Mask credentials in a URL's userinfo and secret-looking query params."""
    url = _SECRET_QUERY.sub(r"\1\2=[REDACTED]", url)
    return _USERINFO.sub(r"\1[REDACTED]@", url)


def _coerce(field: str, value: Any) -> Any:
    kind = EXTRA_FIELDS[field]
    if kind is not None:
        try:
            value = kind(value)
        except (TypeError, ValueError):
            return None
    if field in URL_FIELDS and isinstance(value, str):
        return redact_url(value)
    return value


class JSONFormatter(logging.Formatter):
    """One JSON object per line.

    Source location is added for DEBUG, ERROR and CRITICAL records.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({k: v for k, v in get_log_context().items() if v})

        if record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
            entry["file"] = f"{record.filename}:{record.lineno}"

        for field in EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = _coerce(field, value)

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "stacktrace": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """``time LEVEL logger [stage] [batch:id] [topic] message``, colored on a TTY."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        context = get_log_context()

        level = record.levelname
        if self._use_colors and record.levelno in self.LEVEL_COLORS:
            level = f"{self.LEVEL_COLORS[record.levelno]}{level}{self.RESET}"

        parts = [datetime.now().strftime("%Y-%m-%d %H:%M:%S"), level, record.name]
        if context["stage"]:
            parts.append(f"[{context['stage']}]")
        batch_id = getattr(record, "batch_id", None) or context["batch_id"]
        if batch_id:
            parts.append(f"[batch:{batch_id}]")
        topic = getattr(record, "topic", None)
        if topic:
            parts.append(f"[{topic}]")
        parts.append(record.getMessage())

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line
