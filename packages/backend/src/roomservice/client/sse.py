"""Incremental text/event-stream parser.

Learn: The wire format is line based. Field lines accumulate until a
blank line dispatches the event:

    data: {"status":"ready"}
    <blank>                     → SSEEvent(data='{"status":"ready"}')

    :                           → comment (heartbeat), ignored
    <blank>                     → nothing buffered, nothing dispatched

Several data: lines in one event are joined with "\\n". A single space
after the colon is stripped, as browsers do.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class SSEEvent:
    data: str
    event: str = "message"
    id: Optional[str] = None
    retry: Optional[int] = None


class SSEParser:
    """Feed lines (without their line terminator); get events back."""

    def __init__(self) -> None:
        self._data: list[str] = []
        self._event = ""
        self._id: Optional[str] = None
        self._retry: Optional[int] = None
        self.last_event_id: Optional[str] = None

    def feed_line(self, line: str) -> Optional[SSEEvent]:
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            self._id = value
        elif name == "retry" and value.isdigit():
            self._retry = int(value)
        return None

    def _dispatch(self) -> Optional[SSEEvent]:
        if self._id is not None:
            self.last_event_id = self._id
        if not self._data:
            self._reset()
            return None
        event = SSEEvent(
            data="\n".join(self._data),
            event=self._event or "message",
            id=self._id,
            retry=self._retry,
        )
        self._reset()
        return event

    def _reset(self) -> None:
        self._data = []
        self._event = ""
        self._id = None
        self._retry = None
