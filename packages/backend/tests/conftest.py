"""Test fixtures — brokers, apps and an SSE probe, no Redis required.

Learn: Durable mode is exercised against MemoryLog, which honours the
same append / read_after / latest_id contract as RedisStreamLog. Two
brokers sharing one MemoryLog behave like two API instances sharing one
Redis.

httpx's ASGITransport waits for the whole response body, which never
comes for an event stream. SSEProbe drives the ASGI app directly instead:
it reads the first frames, then sends http.disconnect like a browser
closing the tab.
"""

import asyncio
from typing import Callable, Optional
from urllib.parse import urlsplit

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from roomservice.auth.jwt import create_access_token
from roomservice.main import create_app
from roomservice.realtime.broker import Broker
from roomservice.realtime.log import MemoryLog

FAST_POLL = 0.01


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Wait until predicate() is true, failing the test after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within timeout")
        await asyncio.sleep(0.005)


@pytest_asyncio.fixture()
async def broker():
    """Memory-mode broker, closed after the test."""
    b = Broker()
    try:
        yield b
    finally:
        await b.close()


@pytest_asyncio.fixture()
async def log():
    return MemoryLog()


@pytest_asyncio.fixture()
async def durable_broker(log):
    """Durable-mode broker polling a shared MemoryLog every 10 ms."""
    b = Broker(log=log, poll_interval=FAST_POLL)
    try:
        yield b
    finally:
        await b.close()


@pytest_asyncio.fixture()
async def peer_broker(log):
    """A second 'instance' on the same log as durable_broker."""
    b = Broker(log=log, poll_interval=FAST_POLL)
    try:
        yield b
    finally:
        b.log = None  # the log is shared; durable_broker closes it
        await b.close()


@pytest_asyncio.fixture()
async def app(broker):
    return create_app(broker=broker)


@pytest_asyncio.fixture()
async def client(app):
    """HTTP client for non-streaming routes."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def staff_token():
    return create_access_token("staff-1", role="kitchen")


@pytest.fixture()
def guest_token():
    return create_access_token("guest-1", role="guest")


class SSEProbe:
    """Minimal ASGI client for one long-lived GET request."""

    def __init__(self, app, url: str, headers: Optional[dict] = None):
        self.app = app
        parts = urlsplit(url)
        self.scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": parts.path,
            "raw_path": parts.path.encode(),
            "query_string": parts.query.encode(),
            "root_path": "",
            "headers": [
                (k.lower().encode(), v.encode()) for k, v in (headers or {}).items()
            ],
            "client": ("127.0.0.1", 50000),
            "server": ("test", 80),
        }
        self.status: Optional[int] = None
        self.headers: dict[str, str] = {}
        self.chunks: list[str] = []
        self.finished = False
        self._request_sent = False
        self._disconnect = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def _receive(self):
        if not self._request_sent:
            self._request_sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await self._disconnect.wait()
        return {"type": "http.disconnect"}

    async def _send(self, message):
        if message["type"] == "http.response.start":
            self.status = message["status"]
            self.headers = {
                k.decode().lower(): v.decode() for k, v in message.get("headers", [])
            }
        elif message["type"] == "http.response.body":
            body = message.get("body", b"")
            if body:
                self.chunks.append(body.decode())
            if not message.get("more_body", False):
                self.finished = True

    async def start(self) -> "SSEProbe":
        self._task = asyncio.create_task(self.app(self.scope, self._receive, self._send))
        await eventually(lambda: self.status is not None)
        return self

    @property
    def body(self) -> str:
        return "".join(self.chunks)

    async def wait_for(self, text: str, timeout: float = 2.0) -> None:
        await eventually(lambda: text in self.body, timeout=timeout)

    async def disconnect(self) -> None:
        self._disconnect.set()
        if self._task is not None:
            await asyncio.wait_for(self._task, timeout=2.0)

    async def wait_finished(self) -> None:
        if self._task is not None:
            await asyncio.wait_for(self._task, timeout=2.0)
