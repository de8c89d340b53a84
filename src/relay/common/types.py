"""Message types shared by the broker adapters."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from aiokafka.structs import ConsumerRecord

__all__ = ["PayloadHandler", "ReceivedMessage", "ProduceResult"]

# Receives the text payload of one delivered message
PayloadHandler = Callable[[str], Awaitable[None]]


@dataclass(frozen=True)
class ReceivedMessage:
    """One record read from a topic, with its position."""

    topic: str
    partition: int
    offset: int
    value: bytes | None = None

    @classmethod
    def from_record(cls, record: ConsumerRecord) -> "ReceivedMessage":
        return cls(record.topic, record.partition, record.offset, record.value)

    @property
    def payload(self) -> str:
        # Payloads are opaque text; a null value is delivered as ""
        return (self.value or b"").decode("utf-8", errors="replace")

    @property
    def position(self) -> str:
        return f"{self.topic}:{self.partition}@{self.offset}"


@dataclass(frozen=True)
class ProduceResult:
    """Where the broker stored a published payload."""

    topic: str
    partition: int
    offset: int
