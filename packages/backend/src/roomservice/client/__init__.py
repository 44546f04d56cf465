"""Client side of the order streams.

Learn: Split the same way a UI would consume it:
- backoff.py  — delay arithmetic, no I/O
- state.py    — connecting / live / offline, no I/O
- sse.py      — wire-format parsing, no I/O
- agent.py    — ties them to real connections and loop timers
"""

from roomservice.client.agent import HttpxConnector, StreamAgent, StreamResponse
from roomservice.client.backoff import Backoff
from roomservice.client.sse import SSEEvent, SSEParser
from roomservice.client.state import ConnectionStateMachine, ConnectionStatus

__all__ = [
    "Backoff",
    "ConnectionStateMachine",
    "ConnectionStatus",
    "HttpxConnector",
    "SSEEvent",
    "SSEParser",
    "StreamAgent",
    "StreamResponse",
]
