"""Tests for PeriodicStatsLogger."""

import asyncio
import logging
from unittest.mock import MagicMock, patch

from core.logging.periodic_logger import PeriodicStatsLogger, format_cycle_output


class _Counters:
    def __init__(self):
        self.values = {"events_produced": 0, "events_persisted": 0}

    def __call__(self):
        return dict(self.values)


class TestFormatCycleOutput:
    def test_without_deltas(self):
        assert format_cycle_output(0, {"persisted": 1200}) == "Cycle 0: persisted=1,200"

    def test_with_deltas(self):
        out = format_cycle_output(2, {"persisted": 10, "dlq": 1}, {"persisted": 4, "dlq": 0})
        assert out == "Cycle 2: persisted=10 (+4), dlq=1"


class TestPeriodicStatsLogger:

    def test_start_warns_if_already_running(self):
        psl = PeriodicStatsLogger(interval_seconds=30, get_stats=_Counters(), stage="relay")
        psl._task = MagicMock()

        with patch("core.logging.periodic_logger.logger") as mock_logger:
            psl.start()
            mock_logger.warning.assert_called_once_with("Periodic logger already running")

    def test_log_cycle_tracks_deltas(self, caplog):
        counters = _Counters()
        psl = PeriodicStatsLogger(interval_seconds=30, get_stats=counters, stage="relay")

        with caplog.at_level(logging.INFO, logger="core.logging.periodic_logger"):
            psl.log_cycle()
            counters.values["events_produced"] = 5
            counters.values["events_persisted"] = 3
            deltas = psl.log_cycle()

        assert deltas == {"events_produced": 5, "events_persisted": 3}
        assert caplog.records[0].getMessage() == "Cycle 0: events_produced=0, events_persisted=0"
        assert "events_produced=5 (+5)" in caplog.records[1].getMessage()
        assert caplog.records[1].cycle == 1
        assert caplog.records[1].events_persisted == 3

    def test_non_int_values_logged_not_tracked(self):
        psl = PeriodicStatsLogger(
            interval_seconds=30,
            get_stats=lambda: {"events_persisted": 1, "state": "running"},
            stage="relay",
        )
        assert psl.log_cycle() == {"events_persisted": 1}

    async def test_runs_and_stops(self):
        calls = []

        def get_stats():
            calls.append(1)
            return {"events_persisted": len(calls)}

        psl = PeriodicStatsLogger(interval_seconds=0.01, get_stats=get_stats, stage="relay")
        psl.start()
        assert psl.is_running
        await asyncio.sleep(0.05)
        await psl.stop()

        assert not psl.is_running
        assert len(calls) >= 2

    async def test_stop_when_not_started(self):
        psl = PeriodicStatsLogger(interval_seconds=30, get_stats=_Counters(), stage="relay")
        await psl.stop()
        assert not psl.is_running
