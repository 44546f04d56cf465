"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. The lifespan builds the one Broker this process uses and stores
it on app.state; routes reach it through the get_broker dependency. There
is no module-level broker: tests build apps around their own brokers.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomservice import __version__
from roomservice.api import api_router
from roomservice.config import settings
from roomservice.logging import configure_logging
from roomservice.middleware.request_id import RequestIdMiddleware
from roomservice.middleware.security import SecurityHeadersMiddleware
from roomservice.realtime.broker import Broker

logger = structlog.get_logger()


def _lifespan(broker: Optional[Broker]):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle.

        Learn: Anything before `yield` runs at startup, after `yield` at
        shutdown. Closing the broker unsubscribes every open stream and
        stops their poll loops before the Redis pool is closed.
        """
        app.state.broker = broker if broker is not None else Broker.from_settings(settings)
        logger.info(
            "roomservice.starting",
            version=__version__,
            environment=settings.environment,
            broker=app.state.broker.mode.value,
        )

        if settings.redis_url:
            try:
                await app.state.broker.ping()
                logger.info("roomservice.redis_connected", url=settings.redis_url)
            except Exception as e:
                # Durable mode stays on; publishes fall back to local delivery until Redis returns
                logger.warning("roomservice.redis_unavailable", error=str(e))

        yield

        logger.info("roomservice.shutdown")
        await app.state.broker.close()

    return lifespan


def create_app(broker: Optional[Broker] = None) -> FastAPI:
    """Build and return the FastAPI application.

    Pass a broker to share one with other code (or tests); otherwise one
    is built from settings at startup.
    """
    app = FastAPI(
        title="Room Service Realtime",
        description="Order event streams for room-service ordering",
        version=__version__,
        lifespan=_lifespan(broker),
    )
    if broker is not None:
        app.state.broker = broker

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → CORS → handler
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)

    return app


def build_app() -> FastAPI:
    """uvicorn factory: roomservice.main:build_app (--factory)."""
    configure_logging(
        level="DEBUG" if settings.debug else "INFO",
        json_output=settings.log_json,
    )
    return create_app()
