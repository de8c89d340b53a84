"""
Change-event relay.

Stream connector -> main topic -> ingestion buffer and batch writer -> storage,
with failed batches dead-lettered to a DLQ topic and re-persisted by the
dead-letter retry consumer.
"""

from relay.app import RelayApplication
from relay.dlq import DeadLetterRetryConsumer
from relay.persistence import EventPersistenceService
from relay.stream import StreamConnector

__all__ = [
    "RelayApplication",
    "StreamConnector",
    "EventPersistenceService",
    "DeadLetterRetryConsumer",
]
