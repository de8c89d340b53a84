"""
Relay exception types and failure classification.

Every component raises a ``RelayError`` subclass carrying an
``ErrorCategory``; ``classify_exception`` maps anything else (aiohttp,
timeouts, decode errors) onto the same categories for logging.
"""

import aiohttp

from core.types import ErrorCategory

RETRYABLE_CATEGORIES = frozenset({ErrorCategory.TRANSIENT, ErrorCategory.AUTH, ErrorCategory.UNKNOWN})


class RelayError(Exception):
    """
    Base class for relay failures.

    Attributes:
        message: What failed
        cause: Underlying exception, if any
        context: Extra fields for logs (topic, batch size, ...)
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(self, message: str, cause: Exception | None = None, context: dict | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = context or {}

    @property
    def is_retryable(self) -> bool:
        return self.category in RETRYABLE_CATEGORIES

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message} (caused by {type(self.cause).__name__}: {self.cause})"


class StreamConnectionError(RelayError):
    """The upstream stream could not be opened, or dropped mid-read.

    With a ``status_code`` the category follows the HTTP status; without
    one (reset, timeout, EOF) the failure is transient.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.status_code = status_code
        self.category = (
            ErrorCategory.TRANSIENT if status_code is None else classify_http_status(status_code)
        )


class BrokerError(RelayError):
    """Publishing to or subscribing on a topic failed."""

    category = ErrorCategory.TRANSIENT


class StorageError(RelayError):
    """A storage call (bulk insert, save, delete) failed."""

    category = ErrorCategory.TRANSIENT


def classify_http_status(status_code: int) -> ErrorCategory:
    if status_code == 401:
        return ErrorCategory.AUTH
    if status_code == 429 or status_code >= 500:
        return ErrorCategory.TRANSIENT
    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT
    # 1xx/2xx/3xx are not failures on their own
    return ErrorCategory.UNKNOWN


def classify_exception(exc: BaseException) -> ErrorCategory:
    """Best-effort category for any exception raised inside the relay."""
    if isinstance(exc, RelayError):
        return exc.category
    if isinstance(exc, aiohttp.ClientResponseError):
        return classify_http_status(exc.status)
    if isinstance(exc, (aiohttp.ClientError, TimeoutError, ConnectionError)):
        return ErrorCategory.TRANSIENT
    # Includes UnicodeDecodeError
    if isinstance(exc, (ValueError, TypeError)):
        return ErrorCategory.PERMANENT

    text = str(exc).lower()
    if any(hint in text for hint in ("timeout", "timed out", "connection")):
        return ErrorCategory.TRANSIENT
    return ErrorCategory.UNKNOWN


def error_type_name(exc: BaseException) -> str:
    """Kind recorded on failure records, e.g. ``StorageError``."""
    return type(exc).__name__
