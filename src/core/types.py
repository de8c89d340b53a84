"""
Core types shared across modules.

Kept dependency-free so that both the error hierarchy and the relay
components can import it without circular imports.
"""

from enum import Enum


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., dropped stream connections, broker timeouts, 5xx)
        AUTH: Authentication failures (e.g., 401 from the stream source)
        PERMANENT: Failures that won't succeed on retry
                   (e.g., 404, malformed input)
        UNKNOWN: Unclassified errors, retried conservatively
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


__all__ = ["ErrorCategory"]
