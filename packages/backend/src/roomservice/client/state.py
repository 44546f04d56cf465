"""Connection status state machine (connecting / live / offline).

Learn: This is the only thing a UI needs to render the live indicator.
It knows nothing about sockets or timers; the StreamAgent drives it and
views subscribe to its transitions:

    connecting --opened--> live --failed--> offline --connecting--> connecting
"""

from enum import Enum
from typing import Callable

import structlog

logger = structlog.get_logger()

StatusListener = Callable[["ConnectionStatus"], None]


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    LIVE = "live"
    OFFLINE = "offline"


class ConnectionStateMachine:
    """Holds exactly one status and notifies listeners on real changes."""

    def __init__(self) -> None:
        self.status = ConnectionStatus.CONNECTING
        self._listeners: list[StatusListener] = []

    def on_change(self, listener: StatusListener) -> Callable[[], None]:
        """Subscribe to transitions. Returns a function that unsubscribes."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def connecting(self) -> None:
        self._set(ConnectionStatus.CONNECTING)

    def opened(self) -> None:
        self._set(ConnectionStatus.LIVE)

    def failed(self) -> None:
        self._set(ConnectionStatus.OFFLINE)

    def _set(self, status: ConnectionStatus) -> None:
        if status is self.status:
            return
        self.status = status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.warning("agent.status_listener_failed", status=status.value, error=str(e))
