"""Interval logging of cumulative counters."""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from core.logging.context import set_log_context

logger = logging.getLogger(__name__)


def format_cycle_output(
    cycle_count: int,
    stats: dict[str, int],
    since_last: dict[str, int] | None = None,
) -> str:
    """``Cycle 3: persisted=118 (+39), dlq=2`` (zero deltas are not shown)."""

    def render(key: str, value: int) -> str:
        delta = (since_last or {}).get(key)
        return f"{key}={value:,} (+{delta:,})" if delta else f"{key}={value:,}"

    return f"Cycle {cycle_count}: " + ", ".join(render(k, v) for k, v in stats.items())


class PeriodicStatsLogger:
    """Logs whatever ``get_stats`` returns every ``interval_seconds``.

    Integer values are treated as cumulative counters and reported with
    their growth since the previous cycle; anything else is attached to the
    record unchanged. The first cycle is logged immediately on start.
    """

    def __init__(
        self,
        interval_seconds: float,
        get_stats: Callable[[], dict[str, Any]],
        stage: str,
        worker_id: str = "",
    ):
        self.interval_seconds = interval_seconds
        self.get_stats = get_stats
        self.stage = stage
        self.worker_id = worker_id
        self._task: asyncio.Task | None = None
        self._cycle_count = 0
        self._last_counters: dict[str, int] = {}

    @property
    def is_running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        if self._task is not None:
            logger.warning("Periodic logger already running")
            return
        self._task = asyncio.create_task(self._run(), name=f"{self.stage}-stats")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def log_cycle(self) -> dict[str, int]:
        """Log one cycle; returns counter growth since the previous cycle."""
        stats = self.get_stats()
        counters = {k: v for k, v in stats.items() if isinstance(v, int)}
        growth = {k: v - self._last_counters.get(k, 0) for k, v in counters.items()}

        line = format_cycle_output(self._cycle_count, counters, growth if self._cycle_count else None)
        logger.info(line, extra={"cycle": self._cycle_count, **stats})

        self._last_counters = counters
        self._cycle_count += 1
        return growth

    async def _run(self) -> None:
        set_log_context(stage=self.stage, worker_id=self.worker_id or None)
        while True:
            self.log_cycle()
            await asyncio.sleep(self.interval_seconds)
