"""
Structured logging module.

Provides JSON logging with context propagation (stage, worker, batch).
"""

from core.logging.context import (
    clear_log_context,
    get_log_context,
    set_log_context,
)
from core.logging.context_managers import LogContext, log_phase
from core.logging.formatters import ConsoleFormatter, JSONFormatter
from core.logging.periodic_logger import PeriodicStatsLogger
from core.logging.setup import (
    get_log_file_path,
    log_startup_summary,
    setup_logging,
)
from core.logging.utilities import log_exception, log_with_context

__all__ = [
    # Setup
    "setup_logging",
    "get_log_file_path",
    "log_startup_summary",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    # Context
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    "LogContext",
    "log_phase",
    # Utilities
    "log_with_context",
    "log_exception",
    "PeriodicStatsLogger",
]
