"""Upstream stream connector."""

from relay.stream.connector import StreamConnector
from relay.stream.sse import EventStreamParser, is_event_payload

__all__ = ["StreamConnector", "EventStreamParser", "is_event_payload"]
