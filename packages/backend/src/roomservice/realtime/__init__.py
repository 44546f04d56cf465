"""Real-time infrastructure — broker + Server-Sent Events.

Learn: Events flow through two hops:
1. Order service → broker.publish() (Redis Streams log and/or in-process registry)
2. broker.subscribe() → EventStream → SSE response → browser / StreamAgent

This decouples event producers (order writes) from consumers (open streams).
"""

from roomservice.realtime.broker import (
    Broker,
    BrokerClosedError,
    BrokerMode,
    Subscription,
)
from roomservice.realtime.log import DurableLog, LogEntry, MemoryLog, RedisStreamLog
from roomservice.realtime.registry import ChannelRegistry, ListenerToken
from roomservice.realtime.stream import EventStream, StreamState, format_event

__all__ = [
    "Broker",
    "BrokerClosedError",
    "BrokerMode",
    "ChannelRegistry",
    "DurableLog",
    "EventStream",
    "ListenerToken",
    "LogEntry",
    "MemoryLog",
    "RedisStreamLog",
    "StreamState",
    "Subscription",
    "format_event",
]
