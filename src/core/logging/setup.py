"""Root logger configuration for relay processes."""

import logging
import shutil
import sys
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_LOG_DIR = Path("logs")
PLAIN_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(filename)s:%(lineno)d] %(message)s"

# Client libraries that log every request/heartbeat at INFO or DEBUG
QUIET_LOGGERS = ("aiohttp", "aiokafka", "kafka", "motor", "pymongo", "urllib3")


class ArchivingFileHandler(TimedRotatingFileHandler):
    """Rotating file handler that keeps rotated files in a separate archive folder.

    ``backupCount`` applies to the archive: after each rollover only the
    newest ``backupCount`` archived files of this log are kept (0 keeps all).
    """

    def __init__(self, filename, archive_dir: Path | None = None, **kwargs):
        super().__init__(filename, **kwargs)
        live = Path(self.baseFilename)
        self.archive_dir = Path(archive_dir) if archive_dir else live.parent / "archive"
        self.archive_dir.mkdir(parents=True, exist_ok=True)

    def getFilesToDelete(self):
        # Pruning happens in the archive, not next to the live file
        return []

    def doRollover(self):
        super().doRollover()
        live = Path(self.baseFilename)
        for rotated in live.parent.glob(f"{live.name}.*"):
            try:
                shutil.move(rotated, self.archive_dir / rotated.name)
            except OSError as e:
                # Handlers cannot log about themselves
                print(f"Could not archive {rotated}: {e}", file=sys.stderr)

        if self.backupCount > 0:
            archived = sorted(self.archive_dir.glob(f"{live.name}.*"))
            for stale in archived[: -self.backupCount]:
                stale.unlink(missing_ok=True)


def get_log_file_path(log_dir: Path, name: str, stage: str | None = None) -> Path:
    """``{log_dir}/{YYYY-MM-DD}/{name}[_{stage}]_{MMDD}_{HHMM}.log``"""
    now = datetime.now()
    stem = "_".join(part for part in (name, stage, now.strftime("%m%d"), now.strftime("%H%M")) if part)
    return log_dir / now.strftime("%Y-%m-%d") / f"{stem}.log"


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ConsoleFormatter())
    return handler


def _file_handler(
    log_file: Path,
    level: int,
    json_format: bool,
    rotation_when: str,
    rotation_interval: int,
    backup_count: int,
    archive_dir: Path,
) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = ArchivingFileHandler(
        log_file,
        archive_dir=archive_dir,
        when=rotation_when,
        interval=rotation_interval,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(PLAIN_FILE_FORMAT))
    return handler


def setup_logging(
    name: str = "relay",
    stage: str | None = None,
    log_dir: Path | None = None,
    json_format: bool = True,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    rotation_when: str = "midnight",
    rotation_interval: int = 1,
    backup_count: int = 7,
    suppress_noisy: bool = True,
    worker_id: str | None = None,
    log_to_stdout: bool = False,
) -> logging.Logger:
    """
    Replace the root logger's handlers with console (and, unless
    ``log_to_stdout``, rotating file) output.

    Args:
        name: Logger name and log file prefix
        stage: Stage for the log context and file name (e.g. "dlq")
        log_dir: Base directory for log files (default ./logs)
        json_format: JSON lines in the file instead of plain text
        console_level: Console threshold; in stdout-only mode the lower
            of console_level and file_level is used
        file_level: File threshold
        rotation_when: TimedRotatingFileHandler ``when`` ('midnight', 'H', ...)
        rotation_interval: TimedRotatingFileHandler ``interval``
        backup_count: Archived files kept per log
        suppress_noisy: Raise client library loggers to WARNING
        worker_id: Worker id for the log context
        log_to_stdout: Containers: console only, no files

    Returns:
        The ``name`` logger
    """
    set_log_context(stage=stage or None, worker_id=worker_id or None)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    log_file = None
    if log_to_stdout:
        root.addHandler(_console_handler(min(console_level, file_level)))
    else:
        log_dir = log_dir or DEFAULT_LOG_DIR
        log_file = get_log_file_path(log_dir, name, stage)
        root.addHandler(
            _file_handler(
                log_file,
                file_level,
                json_format,
                rotation_when,
                rotation_interval,
                backup_count,
                archive_dir=log_dir / "archive",
            )
        )
        root.addHandler(_console_handler(console_level))

    if suppress_noisy:
        for quiet in QUIET_LOGGERS:
            logging.getLogger(quiet).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug("Logging configured", extra={"log_file": str(log_file) if log_file else "stdout"})
    return logger


def log_startup_summary(logger: logging.Logger, title: str, settings: dict[str, Any]) -> None:
    """Log a banner followed by one ``key: value`` line per non-empty setting."""
    rule = "=" * 70
    logger.info(rule)
    logger.info("Starting %s", title)
    logger.info(rule)
    for key, value in settings.items():
        if value not in (None, ""):
            logger.info("%s: %s", key, value)
    logger.info(rule)
