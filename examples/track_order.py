#!/usr/bin/env python3
"""
Room Service — follow one order's status live, like the guest tracking page.

Checks the backend, then opens /orders/<id>/stream with a StreamAgent and
prints every status change. Kill the server mid-run to watch the agent go
offline and come back with backoff.

Run with: python examples/track_order.py <order_id>
Publish from another shell:
    roomservice publish order:<order_id> '{"status": "preparing"}'

Requires: pip install -e .  (and ROOMSERVICE_REDIS_URL set on both sides,
otherwise the publishing process and the server don't share events)
Backend must be running: http://localhost:8000
"""

import asyncio
import sys

import httpx

from roomservice.client import ConnectionStatus, StreamAgent

BASE = "http://localhost:8000/api/v1"

MARKS = {
    ConnectionStatus.LIVE: "●",
    ConnectionStatus.CONNECTING: "…",
    ConnectionStatus.OFFLINE: "○",
}


def check_backend() -> None:
    """Verify the backend is reachable and print its broker mode."""
    try:
        resp = httpx.get(f"{BASE}/health", timeout=5)
    except httpx.ConnectError:
        print(f"ERROR: Backend not reachable at {BASE}")
        print("Start it with:  roomservice serve")
        sys.exit(1)

    health = resp.json()
    print("Backend health:")
    print(f"  Status: {health['status']}")
    print(f"  Broker: {health['broker']} (log: {health['log']})")


async def track(order_id: str) -> None:
    def on_payload(payload):
        if "status" in payload:
            print(f"  status → {payload['status']}")
            if payload["status"] == "delivered":
                done.set()

    def on_status(status):
        print(f"{MARKS[status]} {status.value}")

    done = asyncio.Event()
    agent = StreamAgent(f"{BASE}/orders/{order_id}/stream", on_payload, on_status=on_status)
    agent.start()
    try:
        await done.wait()
        print("Order delivered.")
    finally:
        await agent.aclose()


def main():
    if len(sys.argv) != 2:
        print("Usage: python examples/track_order.py <order_id>")
        sys.exit(2)

    check_backend()
    print(f"\nTracking order {sys.argv[1]} (Ctrl-C to stop)...")
    try:
        asyncio.run(track(sys.argv[1]))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
