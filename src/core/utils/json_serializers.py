"""JSON serialization helper used by the structured log formatter."""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


def json_serializer(obj: Any) -> Any:
    """
    ``default=`` hook for json.dumps that keeps numbers numeric.

    - datetime/date -> ISO 8601 string
    - Enum -> value
    - pydantic models -> JSON-mode dict
    - Everything else -> string (fallback)
    """
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    return str(obj)


__all__ = ["json_serializer"]
