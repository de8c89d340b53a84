"""
Resilience patterns module.

Components:
    - BackoffPolicy: bounded exponential backoff for reconnect loops
"""

from .backoff import BackoffPolicy

__all__ = [
    "BackoffPolicy",
]
