"""Dict-backed EventStore with fault injection."""

import asyncio
from collections.abc import Sequence
from datetime import datetime

from core.errors import StorageError
from relay.storage.models import FailedEvent, PersistedEvent


class InMemoryEventStore:
    """In-process store for local development and tests.

    Fault injection:
        fail_next_bulk_insert: number of upcoming bulk_insert calls that raise
        fail_inserts: while True, every single-event insert raises
        fail_saves: while True, every save_failed raises
    """

    def __init__(self):
        self.events: dict[str, PersistedEvent] = {}
        self.failed: dict[str, FailedEvent] = {}
        self.fail_next_bulk_insert = 0
        self.fail_inserts = False
        self.fail_saves = False
        self.bulk_insert_calls: list[list[str]] = []
        self._lock = asyncio.Lock()

    async def bulk_insert(self, payloads: Sequence[str]) -> list[PersistedEvent]:
        batch = list(payloads)
        self.bulk_insert_calls.append(batch)
        if self.fail_next_bulk_insert > 0:
            self.fail_next_bulk_insert -= 1
            raise StorageError(f"Injected bulk insert failure ({len(batch)} events)")

        records = [PersistedEvent(payload=p) for p in batch]
        async with self._lock:
            for record in records:
                self.events[record.id] = record
        return records

    async def insert(self, payload: str) -> PersistedEvent:
        if self.fail_inserts:
            raise StorageError("Injected insert failure")
        record = PersistedEvent(payload=payload)
        async with self._lock:
            self.events[record.id] = record
        return record

    async def find_failed_by_payload(self, payload: str) -> FailedEvent | None:
        for record in self.failed.values():
            if record.payload == payload:
                return record.model_copy()
        return None

    async def save_failed(self, record: FailedEvent) -> None:
        if self.fail_saves:
            raise StorageError("Injected failed-event save failure")
        async with self._lock:
            self.failed[record.id] = record.model_copy()

    async def delete_failed(self, record: FailedEvent) -> None:
        async with self._lock:
            self.failed.pop(record.id, None)

    async def count(self) -> int:
        return len(self.events)

    async def count_since(self, since: datetime) -> int:
        return sum(1 for e in self.events.values() if e.received_at >= since)

    async def count_failed(self) -> int:
        return len(self.failed)

    def payloads(self) -> list[str]:
        """Persisted payloads in insertion order."""
        return [e.payload for e in self.events.values()]


__all__ = ["InMemoryEventStore"]
