"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth for the streams is applied per endpoint, not per router —
only the global orders stream is staff-only; order and room streams are
opened by guests from their tracking pages.
"""

from fastapi import APIRouter

from roomservice.api.health import router as health_router
from roomservice.api.streams import router as streams_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(streams_router, tags=["streams"])
