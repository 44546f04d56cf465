"""Reconnect backoff — exponential growth with jitter, capped.

Learn: Delays are in milliseconds and follow

    next = min(cap, floor(delay * factor) + floor(random() * jitter))

Starting at 1000 ms with factor 1.5 and no jitter that is
1000 → 1500 → 2250 → 3375 → 5062 → 7593 → 11389 → 15000 → 15000 ...

The jitter spreads out clients that all lost the same server at the same
moment, so they don't stampede back in lockstep.
"""

import math
import random
from typing import Callable


class Backoff:
    """Mutable backoff counter. advance() hands out the delay to wait now."""

    def __init__(
        self,
        floor_ms: int = 1000,
        factor: float = 1.5,
        cap_ms: int = 15000,
        jitter_ms: int = 500,
        rand: Callable[[], float] = random.random,
    ):
        if floor_ms <= 0 or cap_ms < floor_ms:
            raise ValueError("Backoff needs 0 < floor_ms <= cap_ms")
        self.floor_ms = floor_ms
        self.factor = factor
        self.cap_ms = cap_ms
        self.jitter_ms = jitter_ms
        self.rand = rand
        self.current = floor_ms

    def advance(self) -> int:
        """Return the current delay and grow the next one."""
        delay = self.current
        jitter = math.floor(self.rand() * self.jitter_ms) if self.jitter_ms else 0
        self.current = min(self.cap_ms, math.floor(delay * self.factor) + jitter)
        return delay

    def reset(self) -> None:
        """Back to the floor — called after a successful open."""
        self.current = self.floor_ms

    def shrink(self, ceiling_ms: int = 1500) -> None:
        """Clamp the next delay, e.g. when the user comes back to the page."""
        self.current = min(self.current, ceiling_ms)
