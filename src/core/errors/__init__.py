"""Relay exception types and failure classification."""

from core.errors.exceptions import (
    RETRYABLE_CATEGORIES,
    BrokerError,
    RelayError,
    StorageError,
    StreamConnectionError,
    classify_exception,
    classify_http_status,
    error_type_name,
)
from core.types import ErrorCategory

__all__ = [
    "ErrorCategory",
    "RETRYABLE_CATEGORIES",
    "RelayError",
    "StreamConnectionError",
    "BrokerError",
    "StorageError",
    "classify_http_status",
    "classify_exception",
    "error_type_name",
]
