"""Dead-letter retry consumer."""

from relay.dlq.consumer import MAX_RETRY_COUNT, DeadLetterRetryConsumer

__all__ = ["DeadLetterRetryConsumer", "MAX_RETRY_COUNT"]
