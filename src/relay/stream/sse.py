"""Line framing for text/event-stream and newline-delimited sources."""

SSE_FIELDS = ("data", "event", "id", "retry")


class EventStreamParser:
    """Incremental server-sent-events parser.

    ``data:`` lines are collected and joined with ``\\n`` when a blank line
    dispatches the event. ``event:``, ``id:``, ``retry:`` and ``:`` comment
    lines carry no payload and are discarded. A line without a known field
    prefix is passed through as-is, which lets plain NDJSON sources share
    the same reader.
    """

    def __init__(self):
        self._data: list[str] = []

    def feed(self, line: str) -> list[str]:
        """Consume one line; return the payloads it completes (possibly none)."""
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return []

        field, sep, value = line.partition(":")
        if sep and field in SSE_FIELDS:
            if field == "data":
                self._data.append(value[1:] if value.startswith(" ") else value)
            return []

        return [*self._dispatch(), line]

    def flush(self) -> list[str]:
        """Return any partially accumulated event (end of stream)."""
        return self._dispatch()

    def _dispatch(self) -> list[str]:
        if not self._data:
            return []
        payload = "\n".join(self._data)
        self._data = []
        return [payload]


def is_event_payload(payload: str) -> bool:
    """Cheap noise filter: keep only payloads that look like a JSON object."""
    return payload.strip().startswith("{")
