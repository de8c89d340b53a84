"""MongoDB EventStore over motor collections."""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from core.errors import StorageError
from relay.storage.models import FailedEvent, PersistedEvent

logger = logging.getLogger(__name__)


class MongoEventStore:
    """EventStore backed by two MongoDB collections.

    Documents use the record ``id`` as ``_id``. Failed events are found by
    exact ``payload`` equality; call :meth:`create_indexes` once on startup
    so that lookup is indexed.
    """

    def __init__(self, events_collection: Any, failed_collection: Any, client: Any = None) -> None:
        self._events = events_collection
        self._failed = failed_collection
        self._client = client

    @classmethod
    def from_uri(
        cls,
        uri: str,
        database: str,
        events_collection: str = "change_events",
        failed_events_collection: str = "failed_events",
    ) -> "MongoEventStore":
        client = AsyncIOMotorClient(uri, tz_aware=True)
        db = client[database]
        return cls(db[events_collection], db[failed_events_collection], client=client)

    async def create_indexes(self) -> None:
        """Create lookup indexes. Idempotent."""
        await self._failed.create_index([("payload", 1)], name="idx_payload")
        await self._events.create_index([("received_at", 1)], name="idx_received_at")

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    @staticmethod
    def _to_doc(record: PersistedEvent | FailedEvent) -> dict[str, Any]:
        doc = record.model_dump(exclude={"id"})
        doc["_id"] = record.id
        return doc

    @staticmethod
    def _failed_from_doc(doc: dict[str, Any]) -> FailedEvent:
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        return FailedEvent(**data)

    # ------------------------------------------------------------------
    # EventStore interface
    # ------------------------------------------------------------------

    async def bulk_insert(self, payloads: Sequence[str]) -> list[PersistedEvent]:
        records = [PersistedEvent(payload=p) for p in payloads]
        if not records:
            return records
        try:
            await self._events.insert_many([self._to_doc(r) for r in records], ordered=True)
        except PyMongoError as e:
            raise StorageError(
                f"Bulk insert of {len(records)} events failed",
                cause=e,
                context={"batch_size": len(records)},
            ) from e
        return records

    async def insert(self, payload: str) -> PersistedEvent:
        record = PersistedEvent(payload=payload)
        try:
            await self._events.insert_one(self._to_doc(record))
        except PyMongoError as e:
            raise StorageError("Insert failed", cause=e) from e
        return record

    async def find_failed_by_payload(self, payload: str) -> FailedEvent | None:
        try:
            doc = await self._failed.find_one({"payload": payload})
        except PyMongoError as e:
            raise StorageError("Failed-event lookup failed", cause=e) from e
        return self._failed_from_doc(doc) if doc is not None else None

    async def save_failed(self, record: FailedEvent) -> None:
        doc = self._to_doc(record)
        try:
            await self._failed.replace_one({"_id": doc["_id"]}, doc, upsert=True)
        except PyMongoError as e:
            raise StorageError("Failed-event save failed", cause=e) from e

    async def delete_failed(self, record: FailedEvent) -> None:
        try:
            await self._failed.delete_one({"_id": record.id})
        except PyMongoError as e:
            raise StorageError("Failed-event delete failed", cause=e) from e

    async def count(self) -> int:
        return await self._events.count_documents({})

    async def count_since(self, since: datetime) -> int:
        return await self._events.count_documents({"received_at": {"$gte": since}})

    async def count_failed(self) -> int:
        return await self._failed.count_documents({})


__all__ = ["MongoEventStore"]
