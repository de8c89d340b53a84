"""Broker abstraction used by the relay components.

The core components only ever publish opaque text payloads to a topic and
register one async handler per (topic, consumer group). Kafka and the
in-memory broker both implement this surface.
"""

from typing import Protocol, runtime_checkable

from relay.common.types import PayloadHandler


@runtime_checkable
class Subscription(Protocol):
    """Handle for a running subscription."""

    topic: str
    group_id: str

    async def cancel(self) -> None:
        """Stop delivering messages; in-flight deliveries complete or are abandoned."""
        ...


@runtime_checkable
class Broker(Protocol):
    """Publish/subscribe transport with at-least-once delivery."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def publish(self, topic: str, payload: str) -> None:
        """Publish one payload. Raises BrokerError if the broker rejects it."""
        ...

    async def subscribe(
        self,
        topic: str,
        group_id: str,
        handler: PayloadHandler,
        instance_id: str | None = None,
    ) -> Subscription:
        """Start delivering messages from ``topic`` to ``handler`` as part of ``group_id``."""
        ...


__all__ = ["Broker", "Subscription"]
