"""Order event streams — Server-Sent Events endpoints.

Learn: Each endpoint opens one EventStream over one channel and hands its
frames() iterator to a StreamingResponse:

    GET /api/v1/orders/stream                  all orders     staff only
    GET /api/v1/orders/{order_id}/stream       one order      guests too
    GET /api/v1/rooms/{room_number}/stream     one room       guests too

Authorization is decided once, by dependency, before the handler runs.
A denied caller gets a plain 401 and no stream is ever opened.

Subscribing happens inside frames(), so a response that is never sent
never leaves a subscription behind.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from roomservice.auth.dependencies import CurrentIdentity, require_staff
from roomservice.config import settings
from roomservice.events.types import (
    HELLO_GUEST,
    HELLO_STAFF,
    ORDERS_CHANNEL,
    order_channel,
    room_channel,
)
from roomservice.realtime.broker import Broker
from roomservice.realtime.stream import SSE_HEADERS, EventStream

router = APIRouter()


def get_broker(request: Request) -> Broker:
    """FastAPI dependency — the process-wide broker built in the lifespan."""
    return request.app.state.broker


def _event_response(broker: Broker, channel: str, hello: dict) -> StreamingResponse:
    stream = EventStream(
        broker,
        channel,
        hello=hello,
        heartbeat_interval=settings.heartbeat_interval_seconds,
        max_queue=settings.stream_queue_size,
    )
    return StreamingResponse(
        stream.frames(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/orders/stream")
async def stream_all_orders(
    broker: Broker = Depends(get_broker),
    identity: CurrentIdentity = Depends(require_staff),
):
    """Every order event, for staff dashboards."""
    return _event_response(broker, ORDERS_CHANNEL, HELLO_STAFF)


@router.get("/orders/{order_id}/stream")
async def stream_order(order_id: str, broker: Broker = Depends(get_broker)):
    """Status changes for one order (guest tracking page)."""
    return _event_response(broker, order_channel(order_id), HELLO_GUEST)


@router.get("/rooms/{room_number}/stream")
async def stream_room(room_number: str, broker: Broker = Depends(get_broker)):
    """Every order event for one room."""
    return _event_response(broker, room_channel(room_number), HELLO_GUEST)
