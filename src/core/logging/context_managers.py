"""Scoped log context and phase timing."""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from core.logging.context import ContextTokens, reset_log_context, set_log_context
from core.logging.utilities import log_with_context


class LogContext:
    """Apply log context fields for the duration of a ``with`` block.

        with LogContext(batch_id=batch_id):
            await store.bulk_insert(batch)

    Only the fields passed in are touched; they revert on exit even if the
    block raises.
    """

    def __init__(self, **fields: str | None):
        self.fields = fields
        self._tokens: ContextTokens = {}

    def __enter__(self) -> "LogContext":
        self._tokens = set_log_context(**self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        reset_log_context(self._tokens)
        self._tokens = {}


@contextmanager
def log_phase(
    logger: logging.Logger,
    phase: str,
    level: int = logging.DEBUG,
    **context: Any,
) -> Iterator[None]:
    """Log how long the wrapped block took, as ``duration_ms``."""
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        log_with_context(logger, level, f"{phase} finished", phase=phase, duration_ms=elapsed_ms, **context)
