"""SSE endpoint tests — auth gate, headers, frames, disconnect cleanup.

Learn: These go through the full ASGI app (middleware included) with
SSEProbe from conftest, which reads the first frames and then sends
http.disconnect the way a closing browser tab does.
"""

import pytest

from conftest import SSEProbe
from roomservice.events.publisher import publish_order_event

ORDER = {"id": "abc", "room_number": "101", "status": "preparing", "total_amount": 1800}


# ═══════════════════════════════════════════════════════════
# Authorization
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_global_stream_requires_staff(app, broker):
    probe = await SSEProbe(app, "/api/v1/orders/stream").start()
    await probe.wait_finished()

    assert probe.status == 401
    assert "data:" not in probe.body
    assert broker.subscription_count == 0


@pytest.mark.asyncio
async def test_global_stream_rejects_guest_role(app, broker, guest_token):
    probe = await SSEProbe(
        app, "/api/v1/orders/stream", {"Authorization": f"Bearer {guest_token}"}
    ).start()
    await probe.wait_finished()

    assert probe.status == 401
    assert broker.subscription_count == 0


@pytest.mark.asyncio
async def test_global_stream_rejects_bad_token(app, broker):
    probe = await SSEProbe(
        app, "/api/v1/orders/stream", {"Authorization": "Bearer not-a-jwt"}
    ).start()
    await probe.wait_finished()

    assert probe.status == 401
    assert probe.headers["www-authenticate"] == "Bearer"


# ═══════════════════════════════════════════════════════════
# Streaming
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_staff_stream_hello_events_and_headers(app, broker, staff_token):
    probe = await SSEProbe(
        app, "/api/v1/orders/stream", {"Authorization": f"Bearer {staff_token}"}
    ).start()

    assert probe.status == 200
    assert probe.headers["content-type"].startswith("text/event-stream")
    assert probe.headers["cache-control"] == "no-cache, no-transform"
    assert "x-request-id" in probe.headers
    assert probe.headers["x-content-type-options"] == "nosniff"

    await probe.wait_for('data: {"type":"hello"}\n\n')
    await publish_order_event(broker, "created", ORDER)
    await probe.wait_for('"type":"created"')
    assert probe.body.index("hello") < probe.body.index("created")

    await probe.disconnect()
    assert broker.subscription_count == 0


@pytest.mark.asyncio
async def test_staff_stream_accepts_session_cookie(app, broker, staff_token):
    probe = await SSEProbe(
        app, "/api/v1/orders/stream", {"Cookie": f"session={staff_token}"}
    ).start()
    assert probe.status == 200
    await probe.disconnect()


@pytest.mark.asyncio
async def test_staff_stream_accepts_query_token(app, broker, staff_token):
    probe = await SSEProbe(app, f"/api/v1/orders/stream?token={staff_token}").start()
    assert probe.status == 200
    await probe.disconnect()


@pytest.mark.asyncio
async def test_order_stream_open_to_guests(app, broker):
    probe = await SSEProbe(app, "/api/v1/orders/abc/stream").start()

    assert probe.status == 200
    await probe.wait_for('data: {"ok":true}\n\n')

    await broker.publish("order:abc", {"status": "preparing"})
    await broker.publish("order:abc", {"status": "ready"})
    await broker.publish("order:other", {"status": "delivered"})
    await probe.wait_for('data: {"status":"ready"}\n\n')

    assert probe.body.index("preparing") < probe.body.index("ready")
    assert "delivered" not in probe.body

    await probe.disconnect()
    assert broker.subscription_count == 0
    assert broker.registry.channels() == []


@pytest.mark.asyncio
async def test_room_stream(app, broker):
    probe = await SSEProbe(app, "/api/v1/rooms/101/stream").start()
    await probe.wait_for('{"ok":true}')

    await publish_order_event(broker, "updated", ORDER)
    await probe.wait_for('"type":"order"')

    await probe.disconnect()
    assert broker.subscription_count == 0


@pytest.mark.asyncio
async def test_many_clients_fan_out(app, broker):
    probes = [await SSEProbe(app, "/api/v1/orders/abc/stream").start() for _ in range(5)]
    for p in probes:
        await p.wait_for('{"ok":true}')
    assert broker.subscription_count == 5

    await broker.publish("order:abc", {"status": "ready"})
    for p in probes:
        await p.wait_for('{"status":"ready"}')

    for p in probes:
        await p.disconnect()
    assert broker.subscription_count == 0
