"""Durable log adapter — append-only per-channel logs with cursor reads.

Learn: The broker only needs three capabilities from a durable backend:

    append(channel, payload)           -> entry id
    read_after(channel, cursor, limit) -> entries strictly newer than cursor
    latest_id(channel)                 -> newest id (a subscriber's "now")

RedisStreamLog maps these onto Redis Streams (XADD / XRANGE / XREVRANGE),
so every API instance reading the same stream sees every event. MemoryLog
implements the same contract in-process for single-instance deployments
and tests. A push-capable backend (e.g. XREAD BLOCK) can slot in behind
the same interface without touching callers.

This module never deletes entries. Retention is either external or the
approximate MAXLEN trim applied on append when stream_maxlen is set.
"""

import json
from collections import deque
from typing import Any, NamedTuple, Optional, Protocol

import redis.asyncio as aioredis
import structlog

logger = structlog.get_logger()

PAYLOAD_FIELD = "d"


class LogEntry(NamedTuple):
    entry_id: Optional[str]  # None for local-only deliveries (append failed)
    payload: Any


class DurableLog(Protocol):
    """Capability interface the broker polls against."""

    async def append(self, channel: str, payload: Any) -> str: ...

    async def read_after(
        self, channel: str, cursor: Optional[str], limit: int
    ) -> list[LogEntry]: ...

    async def latest_id(self, channel: str) -> Optional[str]: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


def encode_payload(payload: Any) -> str:
    """Serialize a payload. Raises TypeError for non-JSON values."""
    return json.dumps(payload, separators=(",", ":"))


def entry_id_key(entry_id: str) -> tuple[int, ...]:
    """Sort key for entry ids.

    Learn: Redis stream ids are "<ms>-<seq>" and must be compared
    numerically part by part: "1718-10" is newer than "1718-9", although
    it sorts lower as a string. MemoryLog ids have a single part.
    """
    return tuple(int(part) for part in entry_id.split("-"))


def is_after(entry_id: str, cursor: Optional[str]) -> bool:
    """True if entry_id is strictly newer than cursor (None = start of log)."""
    if cursor is None:
        return True
    return entry_id_key(entry_id) > entry_id_key(cursor)


# ═══════════════════════════════════════════════════════════
# Redis Streams
# ═══════════════════════════════════════════════════════════


class RedisStreamLog:
    """Durable log on Redis Streams, one stream per channel.

    Learn: Stream ids look like "1718031234567-0" (ms timestamp + sequence)
    and grow monotonically per stream, so they double as resume cursors.
    XRANGE with an exclusive "(" start gives "strictly after cursor".
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        prefix: str = "sse:",
        maxlen: Optional[int] = None,
    ):
        self.redis = redis
        self.prefix = prefix
        self.maxlen = maxlen

    @classmethod
    def from_url(
        cls, url: str, prefix: str = "sse:", maxlen: Optional[int] = None
    ) -> "RedisStreamLog":
        """Build a log with its own connection pool."""
        redis = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(redis, prefix=prefix, maxlen=maxlen)

    def stream_key(self, channel: str) -> str:
        return f"{self.prefix}{channel}"

    async def append(self, channel: str, payload: Any) -> str:
        fields = {PAYLOAD_FIELD: encode_payload(payload)}
        if self.maxlen:
            entry_id = await self.redis.xadd(
                self.stream_key(channel), fields, maxlen=self.maxlen, approximate=True
            )
        else:
            entry_id = await self.redis.xadd(self.stream_key(channel), fields)
        return _as_str(entry_id)

    async def read_after(
        self, channel: str, cursor: Optional[str], limit: int
    ) -> list[LogEntry]:
        start = f"({cursor}" if cursor else "-"
        rows = await self.redis.xrange(
            self.stream_key(channel), min=start, max="+", count=limit
        )
        entries = []
        for raw_id, fields in rows:
            entry_id = _as_str(raw_id)
            raw = fields.get(PAYLOAD_FIELD) if fields else None
            if raw is None:
                logger.warning("log.entry_missing_payload", channel=channel, entry_id=entry_id)
                entries.append(LogEntry(entry_id, _SKIP))
                continue
            try:
                entries.append(LogEntry(entry_id, json.loads(raw)))
            except (TypeError, ValueError) as e:
                logger.warning(
                    "log.entry_undecodable", channel=channel, entry_id=entry_id, error=str(e)
                )
                entries.append(LogEntry(entry_id, _SKIP))
        return entries

    async def latest_id(self, channel: str) -> Optional[str]:
        rows = await self.redis.xrevrange(
            self.stream_key(channel), max="+", min="-", count=1
        )
        if not rows:
            return None
        return _as_str(rows[0][0])

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def close(self) -> None:
        await self.redis.aclose()


def _as_str(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class _Skip:
    """Marker payload for entries that advance the cursor but aren't delivered."""

    def __repr__(self) -> str:
        return "<skip>"


_SKIP = _Skip()


def is_skipped(entry: LogEntry) -> bool:
    return entry.payload is _SKIP


# ═══════════════════════════════════════════════════════════
# In-process
# ═══════════════════════════════════════════════════════════


class MemoryLog:
    """In-process durable log with the same contract as RedisStreamLog.

    Learn: Payloads are stored JSON-encoded, so readers get fresh copies
    exactly like they would from Redis. Ids are zero-padded counters that
    sort correctly as strings.
    """

    def __init__(self, maxlen: Optional[int] = None):
        self.maxlen = maxlen
        self._streams: dict[str, deque[tuple[int, str]]] = {}
        self._seq: dict[str, int] = {}

    async def append(self, channel: str, payload: Any) -> str:
        body = encode_payload(payload)
        seq = self._seq.get(channel, 0) + 1
        self._seq[channel] = seq
        stream = self._streams.setdefault(channel, deque(maxlen=self.maxlen))
        stream.append((seq, body))
        return _format_seq(seq)

    async def read_after(
        self, channel: str, cursor: Optional[str], limit: int
    ) -> list[LogEntry]:
        after = int(cursor) if cursor else 0
        entries = []
        for seq, body in self._streams.get(channel, ()):
            if seq <= after:
                continue
            entries.append(LogEntry(_format_seq(seq), json.loads(body)))
            if len(entries) >= limit:
                break
        return entries

    async def latest_id(self, channel: str) -> Optional[str]:
        stream = self._streams.get(channel)
        if not stream:
            return None
        return _format_seq(stream[-1][0])

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._streams.clear()

    def __len__(self) -> int:
        return sum(len(s) for s in self._streams.values())


def _format_seq(seq: int) -> str:
    return f"{seq:020d}"
