"""Event type and channel constants.

Learn: Centralizing channel names and event kinds prevents typos and
makes it easy to discover every stream a client can subscribe to.

Channels:
    orders              every order, staff dashboards
    order:<order_id>    one order, the guest's tracking page
    room:<room_number>  every order for a room
"""

# ─── Channels ────────────────────────────────────────────

ORDERS_CHANNEL = "orders"


def order_channel(order_id: str) -> str:
    return f"order:{order_id}"


def room_channel(room_number: str) -> str:
    return f"room:{room_number}"


# ─── Order lifecycle ─────────────────────────────────────

ORDER_CREATED = "created"
ORDER_UPDATED = "updated"
ROOM_ORDER = "order"

ORDER_KINDS = (ORDER_CREATED, ORDER_UPDATED)

# ─── Stream greetings ────────────────────────────────────

HELLO_STAFF = {"type": "hello"}
HELLO_GUEST = {"ok": True}
