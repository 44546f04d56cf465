"""Server-Sent Events stream — one broker subscription as a text/event-stream body.

Learn: An EventStream turns pushed payloads into SSE frames:

    data: {"status":"ready"}\\n\\n     ← one event
    :\\n\\n                            ← heartbeat (SSE comment, ignored by clients)

Lifecycle: OPEN → STREAMING → CLOSED. There is no error state; any fault
closes the stream and the client reconnects on its own.

- open() queues the hello frame, subscribes, then arms the heartbeat.
- The subscription callback queues frames; the response body iterator
  (frames()) drains the queue.
- Heartbeats use loop.call_later and re-arm themselves after each firing,
  so they stop by themselves once the stream is closed.
- close() flips the state, cancels the heartbeat, unsubscribes. It runs
  from the body iterator's finally block, which Starlette triggers on
  client disconnect and on server shutdown. Safe to call any number of times.
"""

import asyncio
from collections import deque
from enum import Enum
from typing import Any, AsyncIterator, Optional, Sequence, Union

import structlog

from roomservice.realtime.broker import Broker, BrokerClosedError, Subscription
from roomservice.realtime.log import encode_payload

logger = structlog.get_logger()

HEARTBEAT_FRAME = ":\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # nginx: don't buffer the stream
}


def format_event(payload: Any) -> str:
    """Frame one payload as an SSE data event."""
    return f"data: {encode_payload(payload)}\n\n"


class StreamState(str, Enum):
    OPEN = "open"
    STREAMING = "streaming"
    CLOSED = "closed"


class EventStream:
    """Bridges broker subscriptions to one client's SSE response."""

    def __init__(
        self,
        broker: Broker,
        channels: Union[str, Sequence[str]],
        hello: Any = None,
        heartbeat_interval: float = 15.0,
        max_queue: int = 256,
    ):
        self.broker = broker
        self.channels = [channels] if isinstance(channels, str) else list(channels)
        self.hello = hello if hello is not None else {"ok": True}
        self.heartbeat_interval = heartbeat_interval
        self.max_queue = max_queue
        self.state = StreamState.OPEN
        self._frames: deque[str] = deque()
        self._wakeup = asyncio.Event()
        self._subscriptions: list[Subscription] = []
        self._heartbeat: Optional[asyncio.TimerHandle] = None

    @property
    def closed(self) -> bool:
        return self.state is StreamState.CLOSED

    @property
    def heartbeat_scheduled(self) -> bool:
        return self._heartbeat is not None

    async def open(self) -> None:
        """Queue the hello frame, then subscribe to every channel."""
        if self.state is not StreamState.OPEN:
            return

        # Hello goes first so the client sees it before any event
        self._write(format_event(self.hello))
        try:
            for channel in self.channels:
                sub = await self.broker.subscribe(channel, self.send)
                self._subscriptions.append(sub)
                if self.closed:
                    # Torn down while we were subscribing
                    sub.unsubscribe()
                    return
        except Exception:
            self.close()
            raise

        self.state = StreamState.STREAMING
        self._schedule_heartbeat()
        logger.info("stream.opened", channels=self.channels)

    def send(self, payload: Any) -> None:
        """Subscription callback: queue one event frame."""
        if self.closed:
            return
        self._write(format_event(payload))

    def close(self) -> None:
        """Tear down: closed flag, heartbeat cancelled, unsubscribed. Idempotent."""
        if self.closed:
            return
        self.state = StreamState.CLOSED

        if self._heartbeat is not None:
            self._heartbeat.cancel()
            self._heartbeat = None

        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions.clear()

        # Wake the body iterator so it can finish
        self._frames.clear()
        self._wakeup.set()
        logger.info("stream.closed", channels=self.channels)

    async def frames(self) -> AsyncIterator[str]:
        """Response body: yields frames until the stream closes.

        The response has already started when this runs, so a broker shut
        down under us ends the body instead of raising mid-response.
        """
        try:
            try:
                await self.open()
            except BrokerClosedError:
                logger.info("stream.broker_closed", channels=self.channels)
                return
            while not self.closed:
                if not self._frames:
                    self._wakeup.clear()
                    await self._wakeup.wait()
                    continue
                yield self._frames.popleft()
        finally:
            self.close()

    def pending_frames(self) -> list[str]:
        """Frames queued but not yet written (introspection for tests/debug)."""
        return list(self._frames)

    # ─── Internals ───────────────────────────────────────

    def _write(self, frame: str) -> None:
        if self.closed:
            return
        if len(self._frames) >= self.max_queue:
            # Client isn't reading; drop it rather than buffer forever
            logger.warning(
                "stream.client_too_slow", channels=self.channels, queued=len(self._frames)
            )
            self.close()
            return
        self._frames.append(frame)
        self._wakeup.set()

    def _schedule_heartbeat(self) -> None:
        loop = asyncio.get_running_loop()
        self._heartbeat = loop.call_later(self.heartbeat_interval, self._beat)

    def _beat(self) -> None:
        self._heartbeat = None
        if self.closed:
            return
        self._write(HEARTBEAT_FRAME)
        if not self.closed:
            self._schedule_heartbeat()
