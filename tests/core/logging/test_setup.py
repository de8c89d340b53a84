"""Tests for logging setup and configuration."""

import logging
from pathlib import Path

import pytest

from core.logging.context import get_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter
from core.logging.setup import (
    QUIET_LOGGERS,
    ArchivingFileHandler,
    get_log_file_path,
    log_startup_summary,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestGetLogFilePath:
    def test_name_only(self):
        path = get_log_file_path(Path("logs"), "relay")
        assert path.parent.parent == Path("logs")
        assert path.name.startswith("relay_")
        assert path.suffix == ".log"

    def test_with_stage(self):
        path = get_log_file_path(Path("logs"), "relay", stage="dlq")
        assert path.name.startswith("relay_dlq_")


class TestSetupLogging:
    def test_stdout_only(self, tmp_path):
        setup_logging(log_dir=tmp_path, log_to_stdout=True, console_level=logging.INFO)

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, ConsoleFormatter)
        assert handlers[0].level == logging.DEBUG
        assert not any(tmp_path.iterdir())

    def test_file_and_console(self, tmp_path):
        setup_logging(name="relay", stage="stream", log_dir=tmp_path)

        handlers = logging.getLogger().handlers
        file_handlers = [h for h in handlers if isinstance(h, ArchivingFileHandler)]
        assert len(file_handlers) == 1
        assert isinstance(file_handlers[0].formatter, JSONFormatter)
        assert "relay_stream_" in Path(file_handlers[0].baseFilename).name
        assert (tmp_path / "archive").is_dir()

    def test_plain_text_file_format(self, tmp_path):
        setup_logging(log_dir=tmp_path, json_format=False)

        file_handler = next(
            h for h in logging.getLogger().handlers if isinstance(h, ArchivingFileHandler)
        )
        assert not isinstance(file_handler.formatter, JSONFormatter)

    def test_sets_context(self, tmp_path):
        setup_logging(log_dir=tmp_path, stage="dlq", worker_id="w-7", log_to_stdout=True)
        ctx = get_log_context()
        assert ctx["stage"] == "dlq"
        assert ctx["worker_id"] == "w-7"

    def test_suppresses_noisy_loggers(self, tmp_path):
        setup_logging(log_dir=tmp_path, log_to_stdout=True)
        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING


class TestArchivingHandler:
    def test_rollover_moves_backups(self, tmp_path):
        log_file = tmp_path / "relay.log"
        handler = ArchivingFileHandler(log_file, when="S", backupCount=2)
        try:
            handler.emit(logging.LogRecord("x", logging.INFO, "f", 1, "line", (), None))
            handler.doRollover()
        finally:
            handler.close()

        archived = list((tmp_path / "archive").iterdir())
        assert len(archived) == 1
        assert archived[0].name.startswith("relay.log.")

    def test_archive_pruned_to_backup_count(self, tmp_path):
        log_file = tmp_path / "relay.log"
        archive = tmp_path / "archive"
        handler = ArchivingFileHandler(log_file, when="S", backupCount=1)
        try:
            (archive / "relay.log.2026-01-01_00-00-00").write_text("old")
            handler.doRollover()
        finally:
            handler.close()

        archived = sorted(p.name for p in archive.iterdir())
        assert len(archived) == 1
        assert archived[0] != "relay.log.2026-01-01_00-00-00"


class TestLogStartupSummary:
    def test_logs_non_empty_settings(self, caplog):
        logger = logging.getLogger("test.startup")
        with caplog.at_level(logging.INFO, logger="test.startup"):
            log_startup_summary(
                logger,
                "change-event relay",
                {"Main topic": "change-events", "DLQ topic": "change-events-dlq", "Stream": None},
            )

        messages = [r.getMessage() for r in caplog.records]
        assert "Starting change-event relay" in messages
        assert "Main topic: change-events" in messages
        assert "DLQ topic: change-events-dlq" in messages
        assert not any(m.startswith("Stream") for m in messages)
