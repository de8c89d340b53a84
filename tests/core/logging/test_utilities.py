"""Tests for log_with_context and log_exception."""

import logging

from core.errors import StorageError
from core.logging.utilities import (
    MAX_ERROR_MESSAGE_LENGTH,
    log_exception,
    log_with_context,
)

LOGGER_NAME = "test.utilities"


class TestLogWithContext:
    def test_adds_extra_fields(self, caplog):
        logger = logging.getLogger(LOGGER_NAME)
        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            log_with_context(logger, logging.INFO, "Batch flushed", batch_size=100)

        assert caplog.records[-1].batch_size == 100

    def test_drops_reserved_keys(self, caplog):
        logger = logging.getLogger(LOGGER_NAME)
        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            log_with_context(logger, logging.INFO, "msg", name="clash", topic="t")

        record = caplog.records[-1]
        assert record.name == LOGGER_NAME
        assert record.topic == "t"


class TestLogException:
    def test_relay_error_category(self, caplog):
        logger = logging.getLogger(LOGGER_NAME)
        with caplog.at_level(logging.ERROR, logger=LOGGER_NAME):
            log_exception(logger, StorageError("insert failed"), "Bulk insert failed")

        record = caplog.records[-1]
        assert record.error_category == "transient"
        assert record.error_type == "StorageError"
        assert record.error_message == "insert failed"
        assert record.exc_info is not None

    def test_plain_exception_has_no_category(self, caplog):
        logger = logging.getLogger(LOGGER_NAME)
        with caplog.at_level(logging.ERROR, logger=LOGGER_NAME):
            log_exception(logger, ValueError("bad"), "failed", include_traceback=False)

        record = caplog.records[-1]
        assert record.error_type == "ValueError"
        assert not hasattr(record, "error_category")
        assert record.exc_info is None

    def test_truncates_long_messages(self, caplog):
        logger = logging.getLogger(LOGGER_NAME)
        with caplog.at_level(logging.ERROR, logger=LOGGER_NAME):
            log_exception(logger, RuntimeError("x" * 2000), "failed", include_traceback=False)

        message = caplog.records[-1].error_message
        assert len(message) == MAX_ERROR_MESSAGE_LENGTH + 3
        assert message.endswith("...")

    def test_custom_level(self, caplog):
        logger = logging.getLogger(LOGGER_NAME)
        with caplog.at_level(logging.WARNING, logger=LOGGER_NAME):
            log_exception(logger, RuntimeError("x"), "warn", level=logging.WARNING)

        assert caplog.records[-1].levelno == logging.WARNING
