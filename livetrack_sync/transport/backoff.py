"""Exponential backoff for broker reconnects.

The transport client never gives up on the broker, so unlike a retry policy
there is no attempt limit: the delay grows until it reaches the cap and stays
there until a connection succeeds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class ReconnectBackoff:
    """Delay schedule for reconnect attempts.

    With the defaults, consecutive failures wait 1, 2, 4, 8, 16, 30, 30, ...
    seconds. ``reset()`` after a successful connection starts over at
    ``initial``.
    """

    initial: float = 1.0
    maximum: float = 30.0
    multiplier: float = 2.0

    # Internal state (not constructor args)
    _current: float = field(default=0.0, init=False, repr=False)
    _failures: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        self._current = self.initial

    @property
    def failures(self) -> int:
        """Consecutive failed attempts since the last reset."""
        return self._failures

    def next_delay(self) -> float:
        """Record a failed attempt and return how long to wait before the next."""
        delay = min(self._current, self.maximum)
        self._failures += 1
        self._current = min(self._current * self.multiplier, self.maximum)
        return delay

    def peek(self) -> float:
        """The delay the next failure would produce, without recording it."""
        return min(self._current, self.maximum)

    def reset(self) -> None:
        if self._failures:
            logger.debug(f"Backoff reset after {self._failures} failed attempt(s)")
        self._current = self.initial
        self._failures = 0
