"""Broker — the publish/subscribe façade over registry and durable log.

Learn: Callers only ever see two operations:

    await broker.publish("order:42", {"status": "ready"})
    sub = await broker.subscribe("order:42", callback)
    sub.unsubscribe()

Which backend is active is decided once, when the broker is built:

- MEMORY: subscribe() registers on the ChannelRegistry; publish() delivers
  synchronously to those listeners. Single process only.
- DURABLE: publish() appends to the log *and* delivers locally. Each
  subscription captures the log's latest id as its cursor ("start from
  now"), then polls read_after() on a fixed interval. The next poll is
  scheduled only after the previous one finishes, so reads never overlap.
  An event seen both locally and in the log is delivered once.

Durable delivery is best-effort on the write side: if the log is down,
publish() logs the failure and still delivers to local subscribers.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Optional

import structlog

from roomservice.config import Settings
from roomservice.realtime.log import (
    DurableLog,
    LogEntry,
    RedisStreamLog,
    encode_payload,
    is_after,
    is_skipped,
)
from roomservice.realtime.registry import ChannelRegistry, ListenerToken

logger = structlog.get_logger()

Callback = Callable[[Any], None]

POLL_RETRY_CAP_SECONDS = 30.0


class BrokerMode(str, Enum):
    MEMORY = "memory"
    DURABLE = "durable"


class BrokerClosedError(Exception):
    """Raised when subscribing on a broker that has been closed."""


# ═══════════════════════════════════════════════════════════
# Subscriptions
# ═══════════════════════════════════════════════════════════


class Subscription:
    """One callback attached to one channel.

    Calling the subscription is the same as unsubscribe(), so it can be
    handed around as a plain "unsubscribe" function.
    """

    def __init__(self, broker: "Broker", channel: str, callback: Callback):
        self.broker = broker
        self.channel = channel
        self.callback = callback
        self.token: Optional[ListenerToken] = None
        self._stopped = False

    @property
    def active(self) -> bool:
        return not self._stopped

    def unsubscribe(self) -> None:
        """Stop delivery. Idempotent; no callback runs after this returns."""
        if self._stopped:
            return
        self._stopped = True
        if self.token is not None:
            self.broker.registry.unregister(self.token)
        self.broker._forget(self)

    def __call__(self) -> None:
        self.unsubscribe()


class _LocalIds:
    """Ids delivered locally that the poll has not read past yet.

    Learn: Entries are forgotten by cursor, never by count. Once the poll
    cursor reaches an id, read_after() can never return it again, so the id
    is dropped. Whatever is still held is newer than the cursor, however
    long a burst or a read outage gets.
    """

    def __init__(self) -> None:
        self._ids: set[str] = set()

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, entry_id: str) -> None:
        self._ids.add(entry_id)

    def delivered(self, entry_id: str) -> bool:
        return entry_id in self._ids

    def forget_through(self, cursor: Optional[str]) -> None:
        if cursor is None or not self._ids:
            return
        self._ids = {i for i in self._ids if is_after(i, cursor)}


class DurableSubscription(Subscription):
    """Subscription fed by a log poll loop plus same-process deliveries."""

    def __init__(self, broker: "Broker", channel: str, callback: Callback):
        super().__init__(broker, channel, callback)
        self.cursor: Optional[str] = None
        self.cursor_resolved = False
        self._local_ids = _LocalIds()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._task = asyncio.create_task(
            self._poll_loop(), name=f"broker-poll:{self.channel}"
        )

    def unsubscribe(self) -> None:
        if self._stopped:
            return
        super().unsubscribe()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def on_local(self, entry: LogEntry) -> None:
        """Registry listener: same-process publish, ahead of the log poll."""
        if self._stopped:
            return
        if entry.entry_id is None:
            self._invoke(entry.payload)
            return
        # At or before the cursor: predates this subscription, or the poll
        # already delivered it
        if self.cursor_resolved and not is_after(entry.entry_id, self.cursor):
            return
        self._local_ids.add(entry.entry_id)
        self._invoke(entry.payload)

    async def _poll_loop(self) -> None:
        log = self.broker.log
        failures = 0
        while not self._stopped:
            drained = True
            try:
                if not self.cursor_resolved:
                    self.cursor = await log.latest_id(self.channel)
                    self.cursor_resolved = True
                    self._local_ids.forget_through(self.cursor)
                else:
                    entries = await log.read_after(
                        self.channel, self.cursor, self.broker.poll_batch
                    )
                    for entry in entries:
                        if self._stopped:
                            return
                        self.cursor = entry.entry_id
                        if is_skipped(entry):
                            continue
                        if not self._local_ids.delivered(entry.entry_id):
                            self._invoke(entry.payload)
                    self._local_ids.forget_through(self.cursor)
                    # Full batch → more may be waiting, read again right away
                    drained = len(entries) < self.broker.poll_batch
                failures = 0
            except asyncio.CancelledError:
                raise
            except Exception as e:
                failures += 1
                logger.warning(
                    "broker.poll_failed",
                    channel=self.channel,
                    cursor=self.cursor,
                    failures=failures,
                    error=str(e),
                )

            if self._stopped:
                return
            if failures:
                delay = min(
                    self.broker.poll_interval * 2 ** (failures - 1),
                    POLL_RETRY_CAP_SECONDS,
                )
            elif drained:
                delay = self.broker.poll_interval
            else:
                delay = 0
            await asyncio.sleep(delay)

    def _invoke(self, payload: Any) -> None:
        try:
            self.callback(payload)
        except Exception as e:
            logger.warning("broker.callback_failed", channel=self.channel, error=str(e))


# ═══════════════════════════════════════════════════════════
# Broker
# ═══════════════════════════════════════════════════════════


class Broker:
    """Publish/subscribe entry point. Mode is fixed at construction."""

    def __init__(
        self,
        registry: Optional[ChannelRegistry] = None,
        log: Optional[DurableLog] = None,
        poll_interval: float = 1.0,
        poll_batch: int = 100,
    ):
        self.registry = registry if registry is not None else ChannelRegistry()
        self.log = log
        self.mode = BrokerMode.DURABLE if log is not None else BrokerMode.MEMORY
        self.poll_interval = poll_interval
        self.poll_batch = poll_batch
        self._subscriptions: set[Subscription] = set()
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "Broker":
        """Durable (Redis Streams) when a Redis URL is configured, else memory."""
        log = None
        if settings.redis_url:
            log = RedisStreamLog.from_url(
                settings.redis_url,
                prefix=settings.stream_prefix,
                maxlen=settings.stream_maxlen,
            )
        return cls(
            log=log,
            poll_interval=settings.poll_interval_seconds,
            poll_batch=settings.poll_batch_size,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    # ─── Publish ─────────────────────────────────────────

    async def publish(self, channel: str, payload: Any) -> Optional[str]:
        """Publish a payload. Returns the log entry id, or None if not logged.

        Never raises for log outages. Raises TypeError if the payload is not
        JSON-serializable (checked before anything is written or delivered).
        """
        encode_payload(payload)

        if self._closed:
            logger.warning("broker.publish_after_close", channel=channel)
            return None

        if self.mode is BrokerMode.MEMORY:
            self.registry.deliver(channel, payload)
            return None

        entry_id = None
        try:
            entry_id = await self.log.append(channel, payload)
        except Exception as e:
            # Durable consumers miss this one; local delivery still happens
            logger.warning("broker.append_failed", channel=channel, error=str(e))

        self.registry.deliver(channel, LogEntry(entry_id, payload))
        return entry_id

    # ─── Subscribe ───────────────────────────────────────

    async def subscribe(self, channel: str, callback: Callback) -> Subscription:
        """Attach a callback to a channel, starting from "now"."""
        if self._closed:
            raise BrokerClosedError("Broker is closed")

        if self.mode is BrokerMode.MEMORY:
            sub = Subscription(self, channel, callback)
            sub.token = self.registry.register(channel, callback)
            self._subscriptions.add(sub)
            return sub

        sub = DurableSubscription(self, channel, callback)
        try:
            sub.cursor = await self.log.latest_id(channel)
            sub.cursor_resolved = True
        except Exception as e:
            # Resolved on the first successful poll instead
            logger.warning("broker.cursor_init_failed", channel=channel, error=str(e))

        if self._closed:
            raise BrokerClosedError("Broker closed while subscribing")

        sub.token = self.registry.register(channel, sub.on_local)
        sub.start()
        self._subscriptions.add(sub)
        logger.debug("broker.subscribed", channel=channel, cursor=sub.cursor)
        return sub

    def _forget(self, sub: Subscription) -> None:
        self._subscriptions.discard(sub)

    # ─── Lifecycle ───────────────────────────────────────

    async def ping(self) -> bool:
        """True if the durable log answers (always True in memory mode)."""
        if self.log is None:
            return True
        return await self.log.ping()

    async def close(self) -> None:
        """Unsubscribe everything, clear the registry, close the log."""
        if self._closed:
            return
        self._closed = True

        tasks = []
        for sub in list(self._subscriptions):
            if isinstance(sub, DurableSubscription) and sub._task is not None:
                tasks.append(sub._task)
            sub.unsubscribe()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self.registry.clear()
        if self.log is not None:
            try:
                await self.log.close()
            except Exception as e:
                logger.warning("broker.log_close_failed", error=str(e))
        logger.info("broker.closed", mode=self.mode.value)
