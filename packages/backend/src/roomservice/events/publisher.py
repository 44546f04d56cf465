"""Order event publishing — what the order service calls after each commit.

Learn: One order change fans out to three channels so each kind of client
only receives what it renders:

    orders            {"type": "created" | "updated", "order": {...}}
    order:<id>        {"status": "preparing"}
    room:<room>       {"type": "order", "order": {...}}

Publishing is best-effort for the durable log (see Broker.publish), so an
order write never fails because Redis is down.
"""

from typing import Any

import structlog

from roomservice.events.types import (
    ORDER_KINDS,
    ORDERS_CHANNEL,
    ROOM_ORDER,
    order_channel,
    room_channel,
)
from roomservice.realtime.broker import Broker

logger = structlog.get_logger()


async def publish_order_event(broker: Broker, kind: str, order: dict[str, Any]) -> None:
    """Publish an order lifecycle change to the global, order and room channels.

    `order` must carry at least id, room_number and status.
    """
    if kind not in ORDER_KINDS:
        raise ValueError(f"Unknown order event kind: {kind!r}")

    order_id = str(order["id"])
    await broker.publish(ORDERS_CHANNEL, {"type": kind, "order": order})
    await broker.publish(order_channel(order_id), {"status": order["status"]})
    await broker.publish(
        room_channel(str(order["room_number"])), {"type": ROOM_ORDER, "order": order}
    )
    logger.info(
        "orders.event_published",
        kind=kind,
        order_id=order_id,
        status=order["status"],
    )
