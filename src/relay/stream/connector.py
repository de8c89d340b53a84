"""
Upstream stream connector.

Holds a long-lived streaming HTTP connection to the change feed, keeps the
lines that look like JSON events and publishes each one to the main topic.
Connection failures go through bounded exponential backoff; a stream that
ends is reconnected immediately. Only stop() (or task cancellation) ends it.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

import aiohttp
from opentelemetry.trace import SpanKind

from core.errors import StreamConnectionError, classify_exception, error_type_name
from core.logging import set_log_context
from core.resilience import BackoffPolicy
from relay.common.broker import Broker
from relay.common.metrics import NullMetrics, RelayMetrics
from relay.common.tracing import mark_failed, traced
from relay.stream.sse import EventStreamParser, is_event_payload

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "change-event-relay/0.1"


class StreamConnector:
    """Stream-to-topic relay with reconnect backoff.

    Args:
        broker: Broker to publish payloads to
        topic: Main topic name
        url: Upstream stream URL
        backoff: Reconnect policy; its max_attempts is the window after which
            the delay resets to the initial value
        metrics: Metrics sink (produced, reconnects)
        session: Optional aiohttp session; one is created per run otherwise
        sock_read_timeout: Seconds without data before the connection is
            treated as dead
        connect_timeout: Seconds allowed to establish the TCP connection
        user_agent: User-Agent header sent upstream
    """

    def __init__(
        self,
        broker: Broker,
        topic: str,
        url: str,
        backoff: BackoffPolicy,
        metrics: RelayMetrics | None = None,
        session: aiohttp.ClientSession | None = None,
        sock_read_timeout: float = 300.0,
        connect_timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.broker = broker
        self.topic = topic
        self.url = url
        self.backoff = backoff
        self.metrics = metrics or NullMetrics()
        self.sock_read_timeout = sock_read_timeout
        self.connect_timeout = connect_timeout
        self.user_agent = user_agent
        self._session = session
        self._stopping = asyncio.Event()
        self._failures = 0

        self.produced = 0
        self.reconnects = 0
        self.dropped_items = 0

    @property
    def is_stopping(self) -> bool:
        return self._stopping.is_set()

    def stop(self) -> None:
        """Request the connector to stop; interrupts any backoff wait."""
        self._stopping.set()

    async def run(self) -> None:
        """Publish every payload from stream() to the main topic until stopped."""
        set_log_context(stage="stream")
        logger.info("Starting stream connector", extra={"stream_url": self.url, "topic": self.topic})

        async with aclosing(self.stream()) as payloads:
            async for payload in payloads:
                await self._publish(payload)

        logger.info("Stream connector stopped", extra={"events_produced": self.produced})

    async def _publish(self, payload: str) -> None:
        attributes = {
            "messaging.system": "kafka",
            "messaging.destination.name": self.topic,
            "messaging.message.body.size": len(payload),
        }
        with traced("stream.event.publish", SpanKind.PRODUCER, attributes) as span:
            try:
                await self.broker.publish(self.topic, payload)
            except Exception as e:
                mark_failed(span, e)
                self.dropped_items += 1
                logger.error(
                    "Dropped event, publish failed",
                    extra={
                        "topic": self.topic,
                        "error_type": error_type_name(e),
                        "error_message": str(e),
                    },
                )
                return

        self.produced += 1
        self.metrics.record_produced()
        logger.debug("Published event", extra={"topic": self.topic, "payload_size": len(payload)})

    async def stream(self) -> AsyncIterator[str]:
        """Lazy, endless sequence of validated payloads.

        Ends only when stop() is called.
        """
        session = self._session
        owns_session = session is None
        if owns_session:
            session = aiohttp.ClientSession()

        try:
            while not self._stopping.is_set():
                try:
                    async with aclosing(self._read_stream(session)) as payloads:
                        async for payload in payloads:
                            yield payload
                            if self._stopping.is_set():
                                return
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    if self._stopping.is_set():
                        return
                    if await self._backoff(e):
                        return
                    continue

                if not self._stopping.is_set():
                    logger.warning(
                        "Stream completed unexpectedly, reconnecting",
                        extra={"stream_url": self.url},
                    )
        finally:
            if owns_session:
                await session.close()

    async def _read_stream(self, session: aiohttp.ClientSession) -> AsyncIterator[str]:
        headers = {"Accept": "text/event-stream", "User-Agent": self.user_agent}
        timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=self.connect_timeout, sock_read=self.sock_read_timeout
        )

        async with session.get(self.url, headers=headers, timeout=timeout) as response:
            if response.status != 200:
                raise StreamConnectionError(
                    f"HTTP {response.status} from stream",
                    status_code=response.status,
                    context={"stream_url": self.url},
                )

            self._failures = 0
            logger.info("Connected to stream", extra={"stream_url": self.url})

            parser = EventStreamParser()
            async for raw_line in response.content:
                for payload in self._parse_line(parser, raw_line):
                    yield payload

            for payload in parser.flush():
                if is_event_payload(payload):
                    yield payload

    def _parse_line(self, parser: EventStreamParser, raw_line: bytes) -> list[str]:
        """Decode and frame one line; bad items are logged and skipped."""
        try:
            line = raw_line.decode("utf-8")
            return [p for p in parser.feed(line) if is_event_payload(p)]
        except ValueError as e:
            self.dropped_items += 1
            logger.error(
                "Dropped bad event",
                extra={"error_type": error_type_name(e), "error_message": str(e)},
            )
            return []

    async def _backoff(self, error: Exception) -> bool:
        """Wait before the next attempt. Returns True if stop() was requested meanwhile."""
        self._failures += 1
        delay = self.backoff.get_delay(self._failures - 1)
        self.reconnects += 1
        self.metrics.record_reconnect()

        logger.warning(
            "Reconnecting to stream",
            extra={
                "stream_url": self.url,
                "attempt": self._failures,
                "max_attempts": self.backoff.max_attempts,
                "delay_seconds": delay,
                "error_type": error_type_name(error),
                "error_message": str(error),
                "error_category": classify_exception(error).value,
                "status_code": getattr(error, "status_code", None),
            },
        )

        if self.backoff.is_exhausted(self._failures):
            logger.error(
                "Stream reconnect attempts exhausted, resetting backoff window",
                extra={"stream_url": self.url, "max_attempts": self.backoff.max_attempts},
            )
            self._failures = 0

        return await self._wait(delay)

    async def _wait(self, delay: float) -> bool:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True


__all__ = ["StreamConnector", "DEFAULT_USER_AGENT"]
