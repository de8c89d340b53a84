"""Storage collaborator: record models and EventStore adapters."""

from relay.storage.base import EventStore
from relay.storage.memory import InMemoryEventStore
from relay.storage.models import FailedEvent, PersistedEvent

__all__ = [
    "EventStore",
    "InMemoryEventStore",
    "FailedEvent",
    "PersistedEvent",
]
