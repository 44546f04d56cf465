"""Order event fan-out tests."""

import pytest

from roomservice.events.publisher import publish_order_event
from roomservice.events.types import ORDERS_CHANNEL, order_channel, room_channel

ORDER = {"id": "1", "room_number": "101", "status": "received", "total_amount": 1800}


def test_channel_names():
    assert ORDERS_CHANNEL == "orders"
    assert order_channel("abc") == "order:abc"
    assert room_channel("101") == "room:101"


@pytest.mark.asyncio
async def test_order_created_fans_out_to_three_channels(broker):
    seen = {"orders": [], "order": [], "room": []}
    await broker.subscribe("orders", seen["orders"].append)
    await broker.subscribe("order:1", seen["order"].append)
    await broker.subscribe("room:101", seen["room"].append)

    await publish_order_event(broker, "created", ORDER)

    assert seen["orders"] == [{"type": "created", "order": ORDER}]
    assert seen["order"] == [{"status": "received"}]
    assert seen["room"] == [{"type": "order", "order": ORDER}]


@pytest.mark.asyncio
async def test_status_updates_reach_order_tracker_in_order(broker):
    statuses = []
    await broker.subscribe("order:1", lambda p: statuses.append(p["status"]))

    for status in ("preparing", "ready", "delivered"):
        await publish_order_event(broker, "updated", {**ORDER, "status": status})

    assert statuses == ["preparing", "ready", "delivered"]


@pytest.mark.asyncio
async def test_other_rooms_see_nothing(broker):
    other = []
    await broker.subscribe("room:202", other.append)

    await publish_order_event(broker, "updated", ORDER)

    assert other == []


@pytest.mark.asyncio
async def test_unknown_kind_rejected(broker):
    received = []
    await broker.subscribe("orders", received.append)

    with pytest.raises(ValueError, match="Unknown order event kind"):
        await publish_order_event(broker, "deleted", ORDER)
    assert received == []
