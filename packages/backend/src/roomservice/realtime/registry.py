"""Channel registry — in-process fan-out of one channel to many listeners.

Learn: This is the last hop of every delivery. In memory mode the broker
uses it directly; in durable mode it still carries same-process events so
local subscribers don't wait for the next log poll.

There is no history here. A listener registered after deliver() never
sees that event — late joiners catch up by querying the API.
"""

from dataclasses import dataclass, field
from itertools import count
from typing import Any, Callable

import structlog

logger = structlog.get_logger()

Listener = Callable[[Any], None]

_token_ids = count(1)


@dataclass(frozen=True)
class ListenerToken:
    """Handle returned by register(); pass it back to unregister()."""

    channel: str
    id: int = field(default_factory=lambda: next(_token_ids))


class ChannelRegistry:
    """Maps channel names to the listeners currently attached to them."""

    def __init__(self) -> None:
        self._channels: dict[str, dict[ListenerToken, Listener]] = {}

    def register(self, channel: str, listener: Listener) -> ListenerToken:
        """Attach a listener to a channel. The channel is created on first use."""
        token = ListenerToken(channel)
        self._channels.setdefault(channel, {})[token] = listener
        return token

    def unregister(self, token: ListenerToken) -> None:
        """Detach a listener. Unknown or already-removed tokens are ignored."""
        listeners = self._channels.get(token.channel)
        if listeners is None:
            return
        listeners.pop(token, None)
        if not listeners:
            # Drop empty channels so per-order churn doesn't leak memory
            del self._channels[token.channel]

    def deliver(self, channel: str, payload: Any) -> int:
        """Invoke every listener on the channel with the payload.

        Iterates over a snapshot, so listeners may unregister themselves (or
        others) mid-delivery. A listener that raises is logged and skipped.
        Returns how many listeners were invoked.
        """
        listeners = self._channels.get(channel)
        if not listeners:
            return 0

        delivered = 0
        for token, listener in list(listeners.items()):
            # Removed by an earlier listener during this delivery
            if token not in listeners:
                continue
            try:
                listener(payload)
            except Exception as e:
                logger.warning(
                    "registry.listener_failed",
                    channel=channel,
                    listener_id=token.id,
                    error=str(e),
                )
            delivered += 1
        return delivered

    def listener_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    def channels(self) -> list[str]:
        return list(self._channels)

    def clear(self) -> None:
        self._channels.clear()
