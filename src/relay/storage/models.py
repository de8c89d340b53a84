"""Stored record types."""

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from core.errors import error_type_name


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PersistedEvent(BaseModel):
    """An event written to storage. Immutable once created."""

    model_config = {"frozen": True}

    id: str = Field(default_factory=_new_id)
    payload: str
    received_at: datetime = Field(default_factory=_utcnow)


class FailedEvent(BaseModel):
    """Failure-tracking record for a payload that could not be persisted.

    Looked up by exact ``payload`` equality; ``retry_count`` starts at 0 and
    grows by one per failed reprocessing attempt.
    """

    id: str = Field(default_factory=_new_id)
    payload: str
    error_type: str
    error_message: str = ""
    failed_at: datetime = Field(default_factory=_utcnow)
    retry_count: int = 0

    @classmethod
    def from_error(cls, payload: str, exc: BaseException) -> "FailedEvent":
        return cls(
            payload=payload,
            error_type=error_type_name(exc),
            error_message=str(exc),
        )

    def record_retry_failure(self, exc: BaseException) -> "FailedEvent":
        """Return a copy with retry_count + 1 and the latest error."""
        return self.model_copy(
            update={
                "retry_count": self.retry_count + 1,
                "error_type": error_type_name(exc),
                "error_message": str(exc),
                "failed_at": _utcnow(),
            }
        )


__all__ = ["PersistedEvent", "FailedEvent"]
