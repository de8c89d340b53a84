"""Helpers for logging with structured fields."""

import logging
from typing import Any

# Attribute names a LogRecord already owns; passing them in ``extra`` raises
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

MAX_ERROR_MESSAGE_LENGTH = 500


def log_with_context(logger: logging.Logger, level: int, msg: str, **fields: Any) -> None:
    """
    Log ``msg`` with ``fields`` as structured extras.

    Fields that collide with LogRecord attributes are dropped. ``exc_info``
    is passed through to the logger.

        log_with_context(logger, logging.INFO, "Batch flushed", batch_size=100)
    """
    exc_info = fields.pop("exc_info", None)
    extra = {key: value for key, value in fields.items() if key not in _RECORD_ATTRS}
    logger.log(level, msg, exc_info=exc_info, extra=extra)


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **fields: Any,
) -> None:
    """
    Log ``exc`` with ``error_type``, a truncated ``error_message`` and, for
    RelayError subclasses, ``error_category``.

        except StorageError as e:
            log_exception(logger, e, "Bulk insert failed", batch_size=len(batch))
    """
    category = getattr(exc, "category", None)
    if fields.get("error_category") is None and category is not None:
        fields["error_category"] = getattr(category, "value", str(category))

    text = str(exc)
    if len(text) > MAX_ERROR_MESSAGE_LENGTH:
        text = text[:MAX_ERROR_MESSAGE_LENGTH] + "..."
    fields.setdefault("error_type", type(exc).__name__)
    fields["error_message"] = text

    if include_traceback:
        fields["exc_info"] = exc
    log_with_context(logger, level, msg, **fields)
