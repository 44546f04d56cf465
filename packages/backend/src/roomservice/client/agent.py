"""StreamAgent — keeps one logical event stream alive across dropped connections.

Learn: The agent owns at most one physical connection and at most one
pending reconnect timer. Everything is driven by connection outcomes and
loop timers; nothing blocks the caller.

1. start() opens a connection. HTTP 200 → status "live", backoff reset.
2. Every SSE event: json.loads → on_payload(decoded). Frames that don't
   decode (heartbeats, garbage) are ignored and don't touch the status.
3. Error or end of stream → status "offline", one reconnect scheduled
   after backoff.advance() ms.
4. notify_visible() (tab/app back in the foreground) while not live and
   with no timer pending → clamp the delay to ~1.5 s and reconnect now.
5. stop() cancels the timer and the connection; nothing fires afterwards.
   aclose() does the same and also closes the default HttpxConnector.

401/403 is not a transient fault: the agent goes offline, calls
on_unauthorized(status_code) and does not retry until start() is called
again (after the user re-authenticates).
"""

import asyncio
import json
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Optional, Protocol

import httpx
import structlog

from roomservice.client.backoff import Backoff
from roomservice.client.sse import SSEEvent, SSEParser
from roomservice.client.state import ConnectionStateMachine, ConnectionStatus, StatusListener

logger = structlog.get_logger()

VISIBLE_RECONNECT_CEILING_MS = 1500
AUTH_FAILURE_CODES = (401, 403)


# ═══════════════════════════════════════════════════════════
# Connectors
# ═══════════════════════════════════════════════════════════


@dataclass
class StreamResponse:
    """What a connector hands back: the status and the body's lines."""

    status_code: int
    lines: AsyncIterator[str]


class Connector(Protocol):
    def connect(self, url: str) -> AsyncContextManager[StreamResponse]: ...


class HttpxConnector:
    """Opens SSE connections with httpx.

    Learn: The read timeout is the liveness check. The server sends a
    heartbeat every 15 s, so 45 s of silence means the connection is dead
    even if TCP hasn't noticed yet.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        token: Optional[str] = None,
        read_timeout: float = 45.0,
    ):
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, read=read_timeout)
        )
        self.token = token

    @asynccontextmanager
    async def connect(self, url: str) -> AsyncIterator[StreamResponse]:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        async with self.client.stream("GET", url, headers=headers) as response:
            yield StreamResponse(response.status_code, response.aiter_lines())

    async def aclose(self) -> None:
        await self.client.aclose()


# ═══════════════════════════════════════════════════════════
# Agent
# ═══════════════════════════════════════════════════════════


class StreamAgent:
    """Client-side reconnection agent for one event stream URL."""

    def __init__(
        self,
        url: str,
        on_payload: Callable[[Any], None],
        *,
        on_status: Optional[StatusListener] = None,
        on_unauthorized: Optional[Callable[[int], None]] = None,
        connector: Optional[Connector] = None,
        backoff: Optional[Backoff] = None,
        visible_ceiling_ms: int = VISIBLE_RECONNECT_CEILING_MS,
    ):
        self.url = url
        self.on_payload = on_payload
        self.on_unauthorized = on_unauthorized
        # A connector built here is ours to close in aclose()
        self._owns_connector = connector is None
        self.connector = connector if connector is not None else HttpxConnector()
        self.backoff = backoff or Backoff()
        self.visible_ceiling_ms = visible_ceiling_ms
        self.state = ConnectionStateMachine()
        if on_status is not None:
            self.state.on_change(on_status)

        self._task: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._generation = 0
        self._stopped = False
        self.unauthorized = False

    @property
    def status(self) -> ConnectionStatus:
        return self.state.status

    @property
    def reconnect_pending(self) -> bool:
        return self._timer is not None

    # ─── Public API ──────────────────────────────────────

    def start(self) -> None:
        """Open the stream (or re-open it after stop() / an auth failure)."""
        self._stopped = False
        self.unauthorized = False
        self._connect()

    def notify_visible(self) -> None:
        """The user is looking again: reconnect soon if we're not live."""
        if self._stopped or self.unauthorized:
            return
        if self.status is ConnectionStatus.LIVE or self._timer is not None:
            return
        self.backoff.shrink(self.visible_ceiling_ms)
        self._connect()

    def stop(self) -> None:
        """Cancel the timer, close the connection, ignore everything after."""
        self._stopped = True
        self._cancel_timer()
        self._close_connection()

    async def aclose(self) -> None:
        """stop(), then release the HTTP client if the agent created it.

        A connector passed in by the caller stays open; closing it is the
        caller's job.
        """
        self.stop()
        if self._owns_connector:
            await self.connector.aclose()

    # ─── Connection lifecycle ────────────────────────────

    def _connect(self) -> None:
        self._cancel_timer()
        self._close_connection()
        if self._stopped:
            return
        self.state.connecting()
        self._generation += 1
        self._task = asyncio.create_task(
            self._run(self._generation), name=f"stream-agent:{self.url}"
        )

    def _close_connection(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _current(self, generation: int) -> bool:
        return not self._stopped and generation == self._generation

    async def _run(self, generation: int) -> None:
        try:
            async with self.connector.connect(self.url) as response:
                if response.status_code in AUTH_FAILURE_CODES:
                    self._rejected(response.status_code, generation)
                    return
                if response.status_code != 200:
                    raise ConnectionError(f"Unexpected status {response.status_code}")

                if not self._current(generation):
                    return
                self.state.opened()
                self.backoff.reset()
                logger.info("agent.connected", url=self.url)

                parser = SSEParser()
                async for line in response.lines:
                    if not self._current(generation):
                        return
                    event = parser.feed_line(line)
                    if event is not None:
                        self._handle_event(event)
            raise ConnectionError("Stream closed by server")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._current(generation):
                return
            logger.info("agent.connection_lost", url=self.url, error=str(e))
            self._schedule_reconnect()

    def _handle_event(self, event: SSEEvent) -> None:
        try:
            payload = json.loads(event.data)
        except ValueError:
            return
        try:
            self.on_payload(payload)
        except Exception as e:
            logger.warning("agent.payload_handler_failed", url=self.url, error=str(e))

    def _rejected(self, status_code: int, generation: int) -> None:
        if not self._current(generation):
            return
        self.unauthorized = True
        self.state.failed()
        logger.warning("agent.unauthorized", url=self.url, status_code=status_code)
        if self.on_unauthorized is not None:
            self.on_unauthorized(status_code)

    # ─── Reconnect timer ─────────────────────────────────

    def _schedule_reconnect(self) -> None:
        self.state.failed()
        if self._timer is not None:
            return
        delay_ms = self.backoff.advance()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay_ms / 1000, self._reconnect_due)
        logger.debug("agent.reconnect_scheduled", url=self.url, delay_ms=delay_ms)

    def _reconnect_due(self) -> None:
        self._timer = None
        if self._stopped:
            return
        self._connect()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
