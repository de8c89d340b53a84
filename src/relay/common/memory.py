"""In-memory Broker for local development and tests.

Each (topic, group) pair gets its own asyncio queue; a publish fans out to
every group subscribed to the topic, and instances within a group share that
group's queue (one delivery per group, like Kafka consumer groups).
"""

import asyncio
import logging
from collections import defaultdict, deque

from relay.common.types import PayloadHandler

logger = logging.getLogger(__name__)


class InMemorySubscription:
    def __init__(
        self,
        broker: "InMemoryBroker",
        topic: str,
        group_id: str,
        queue: asyncio.Queue,
        handler: PayloadHandler,
    ):
        self.broker = broker
        self.topic = topic
        self.group_id = group_id
        self._queue = queue
        self._handler = handler
        self._task = asyncio.create_task(self._run(), name=f"memsub-{topic}-{group_id}")

    async def _run(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                await self._handler(payload)
            except Exception:
                logger.error(
                    "Message handler raised, skipping message",
                    extra={"topic": self.topic, "group_id": self.group_id},
                    exc_info=True,
                )
            finally:
                self._queue.task_done()

    async def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self.broker._remove(self)


class InMemoryBroker:
    """Asyncio-queue broker with consumer-group fan-out.

    The most recent ``history_size`` payloads of each topic are kept for
    inspection through published_to().
    """

    def __init__(self, history_size: int = 1000):
        self._groups: dict[str, dict[str, asyncio.Queue]] = defaultdict(dict)
        self._subscriptions: list[InMemorySubscription] = []
        self._history: dict[str, deque[str]] = defaultdict(lambda: deque(maxlen=history_size))

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        for subscription in list(self._subscriptions):
            await subscription.cancel()

    async def publish(self, topic: str, payload: str) -> None:
        self._history[topic].append(payload)
        for queue in self._groups[topic].values():
            queue.put_nowait(payload)

    def published_to(self, topic: str) -> list[str]:
        """Recent payloads published to ``topic``, oldest first."""
        return list(self._history.get(topic, ()))

    async def subscribe(
        self,
        topic: str,
        group_id: str,
        handler: PayloadHandler,
        instance_id: str | None = None,
    ) -> InMemorySubscription:
        queue = self._groups[topic].setdefault(group_id, asyncio.Queue())
        subscription = InMemorySubscription(self, topic, group_id, queue, handler)
        self._subscriptions.append(subscription)
        return subscription

    async def join(self) -> None:
        """Wait until every published message has been handled."""
        for groups in list(self._groups.values()):
            for queue in list(groups.values()):
                await queue.join()

    def _remove(self, subscription: InMemorySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)


__all__ = ["InMemoryBroker", "InMemorySubscription"]
