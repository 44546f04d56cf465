"""Middleware tests — request ids and security headers on plain and streaming responses.

Learn: Both middlewares are pure ASGI and only touch http.response.start,
so the same headers show up on a JSON health response, a 401, and an
open event stream whose body never finishes.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import SSEProbe

EXPECTED_SECURITY_HEADERS = {
    "x-content-type-options": "nosniff",
    "x-frame-options": "DENY",
    "referrer-policy": "strict-origin-when-cross-origin",
}


@pytest.mark.asyncio
async def test_health_carries_security_headers(client):
    resp = await client.get("/api/v1/health")

    for name, value in EXPECTED_SECURITY_HEADERS.items():
        assert resp.headers[name] == value
    assert "strict-transport-security" not in resp.headers


@pytest.mark.asyncio
async def test_hsts_only_over_https(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="https://test") as ac:
        resp = await ac.get("/api/v1/health")

    assert resp.headers["strict-transport-security"].startswith("max-age=")


@pytest.mark.asyncio
async def test_each_request_gets_its_own_id(client):
    ids = {(await client.get("/api/v1/health")).headers["x-request-id"] for _ in range(3)}
    assert len(ids) == 3


@pytest.mark.asyncio
async def test_incoming_request_id_echoed(client):
    resp = await client.get("/api/v1/health", headers={"X-Request-ID": "kitchen-tablet-7"})
    assert resp.headers["x-request-id"] == "kitchen-tablet-7"


@pytest.mark.asyncio
async def test_rejected_stream_still_gets_headers(app):
    probe = await SSEProbe(app, "/api/v1/orders/stream", {"X-Request-ID": "denied-1"}).start()
    await probe.wait_finished()

    assert probe.status == 401
    assert probe.headers["x-request-id"] == "denied-1"
    assert probe.headers["x-frame-options"] == "DENY"


@pytest.mark.asyncio
async def test_open_stream_gets_headers_before_first_frame(app):
    probe = await SSEProbe(app, "/api/v1/rooms/101/stream", {"X-Request-ID": "room-101"}).start()

    assert probe.headers["x-request-id"] == "room-101"
    for name, value in EXPECTED_SECURITY_HEADERS.items():
        assert probe.headers[name] == value
    assert probe.headers["x-accel-buffering"] == "no"

    await probe.disconnect()
