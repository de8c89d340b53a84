"""
Core library: reusable, transport-agnostic building blocks for the relay.

Modules:
    errors      - Error classification and exception hierarchy
    logging     - Structured JSON logging with context propagation
    resilience  - Bounded exponential backoff for reconnect loops
    utils       - JSON serialization helpers, worker ids

Nothing in here knows about Kafka, MongoDB or the upstream stream source.
"""

from .types import ErrorCategory

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
]
