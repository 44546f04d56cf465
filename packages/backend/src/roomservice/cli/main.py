"""Room service CLI — run the stream server, mint tokens, publish and watch events.

Usage:
    roomservice serve                                  # Start the API (uvicorn)
    roomservice token --role kitchen                   # Print a staff JWT
    roomservice publish order:42 '{"status": "ready"}' # Publish one event
    roomservice watch /api/v1/orders/42/stream         # Follow a stream, with reconnects
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click

from roomservice import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("ROOMSERVICE_API_URL", DEFAULT_API_URL).rstrip("/")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _status_color(status: str) -> str:
    """Map connection statuses to click colors."""
    colors = {
        "live": "green",
        "connecting": "yellow",
        "offline": "red",
    }
    return colors.get(status, "white")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="roomservice")
def main():
    """Room service — real-time order event streams."""


# ---------------------------------------------------------------------------
# roomservice serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: ROOMSERVICE_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: ROOMSERVICE_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Start the stream server."""
    import uvicorn

    from roomservice.config import settings

    uvicorn.run(
        "roomservice.main:build_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# roomservice token
# ---------------------------------------------------------------------------


@main.command()
@click.option("--user", "-u", default="cli", help="Subject (user id) for the token")
@click.option("--role", "-r", default="kitchen", help="Role claim (admin, manager, kitchen, guest)")
@click.option("--minutes", type=int, default=None, help="Lifetime in minutes")
def token(user: str, role: str, minutes: Optional[int]):
    """Print a signed access token (development helper)."""
    from roomservice.auth.jwt import create_access_token

    click.echo(create_access_token(user, role=role, expires_minutes=minutes))


# ---------------------------------------------------------------------------
# roomservice publish
# ---------------------------------------------------------------------------


@main.command()
@click.argument("channel")
@click.argument("payload")
def publish(channel: str, payload: str):
    """Publish one JSON PAYLOAD on CHANNEL.

    Only useful in durable mode (ROOMSERVICE_REDIS_URL set): in memory mode
    there is nobody in this process to receive it.
    """
    from roomservice.config import settings
    from roomservice.realtime.broker import Broker, BrokerMode

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        click.secho(f"Error: payload is not valid JSON: {e}", fg="red", err=True)
        sys.exit(1)

    async def _publish():
        broker = Broker.from_settings(settings)
        try:
            if broker.mode is BrokerMode.MEMORY:
                click.secho(
                    "Warning: ROOMSERVICE_REDIS_URL not set — event delivered in-process only",
                    fg="yellow",
                    err=True,
                )
            return await broker.publish(channel, data)
        finally:
            await broker.close()

    entry_id = _run(_publish())
    if entry_id:
        click.echo(f"Published {channel} → {entry_id}")
    else:
        click.echo(f"Published {channel} (not logged)")


# ---------------------------------------------------------------------------
# roomservice watch
# ---------------------------------------------------------------------------


@main.command()
@click.argument("path")
@click.option("--token", "-t", "auth_token", envvar="ROOMSERVICE_TOKEN", help="Bearer token")
@click.option("--cap-ms", type=int, default=15000, help="Maximum reconnect delay")
def watch(path: str, auth_token: Optional[str], cap_ms: int):
    """Follow an event stream at PATH, reconnecting with backoff."""
    from roomservice.client.agent import HttpxConnector, StreamAgent
    from roomservice.client.backoff import Backoff

    url = path if path.startswith("http") else f"{_api_url()}{path}"

    async def _watch():
        done = asyncio.Event()

        def on_payload(payload):
            click.echo(json.dumps(payload, default=str))

        def on_status(status):
            click.secho(f"[{status.value}]", fg=_status_color(status.value), err=True)

        def on_unauthorized(code):
            click.secho(f"Unauthorized ({code}) — pass --token", fg="red", err=True)
            done.set()

        connector = HttpxConnector(token=auth_token)
        agent = StreamAgent(
            url,
            on_payload,
            on_status=on_status,
            on_unauthorized=on_unauthorized,
            connector=connector,
            backoff=Backoff(cap_ms=cap_ms),
        )
        agent.start()
        try:
            await done.wait()
        finally:
            agent.stop()
            await connector.aclose()

    try:
        _run(_watch())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
