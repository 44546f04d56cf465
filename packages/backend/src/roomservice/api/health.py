"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and, in
durable mode, that the Redis Streams log is reachable. Memory mode is
always healthy — there is nothing external to check.
"""

from fastapi import APIRouter, Depends

from roomservice import __version__
from roomservice.api.streams import get_broker
from roomservice.realtime.broker import Broker

router = APIRouter()


@router.get("/health")
async def health_check(broker: Broker = Depends(get_broker)):
    """Check server health and broker connectivity."""
    checks = {"server": "ok", "version": __version__, "broker": broker.mode.value}

    try:
        checks["log"] = "ok" if await broker.ping() else "error: no pong"
    except Exception as e:
        checks["log"] = f"error: {e}"

    status = "healthy" if checks["log"] == "ok" else "degraded"

    return {
        "status": status,
        **checks,
        "subscriptions": broker.subscription_count,
        "channels": len(broker.registry.channels()),
    }
