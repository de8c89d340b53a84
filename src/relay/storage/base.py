"""Storage collaborator interface."""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable

from relay.storage.models import FailedEvent, PersistedEvent


@runtime_checkable
class EventStore(Protocol):
    """Bulk insert, find-by-payload, save and delete over the two record kinds.

    Implementations raise StorageError (or let driver errors propagate) on
    failure; the callers decide how failures are routed.
    """

    async def bulk_insert(self, payloads: Sequence[str]) -> list[PersistedEvent]:
        """Persist all payloads in one write. All-or-nothing from the caller's view."""
        ...

    async def insert(self, payload: str) -> PersistedEvent: ...

    async def find_failed_by_payload(self, payload: str) -> FailedEvent | None:
        """Exact payload equality lookup."""
        ...

    async def save_failed(self, record: FailedEvent) -> None:
        """Create or replace (by id) a failed-event record."""
        ...

    async def delete_failed(self, record: FailedEvent) -> None:
        """Delete a failed-event record; a missing record is not an error."""
        ...

    async def count(self) -> int: ...

    async def count_since(self, since: datetime) -> int: ...

    async def count_failed(self) -> int: ...


__all__ = ["EventStore"]
