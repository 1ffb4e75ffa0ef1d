"""
app/services/rate_limiter.py

Purpose: Per-identity abuse damping

- Sliding-window message counter kept in process memory
- Rebuilt from scratch on restart (not a correctness mechanism)
- sweep() drops idle identities so the map stays bounded
"""

import time
from collections import deque
from typing import Callable, Deque, Dict

from app.core.logging import get_logger

logger = get_logger(__name__)


class SlidingWindowRateLimiter:
    """
    Counts events per identity inside a sliding time window.

    Args:
        max_events: Ceiling inside one window
        window_seconds: Window length
        clock: Monotonic clock (injectable for tests)
    """

    def __init__(
        self,
        max_events: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic
    ):
        self.max_events = max_events
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}

    def _trim(self, hits: Deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()

    def hit(self, identity: str) -> bool:
        """
        Records one event and reports whether it is within the ceiling.

        The event is appended even when rejected, so a client that keeps
        hammering stays throttled until it actually slows down.

        Returns:
            True if allowed, False if over the ceiling
        """
        now = self._clock()
        hits = self._hits.setdefault(identity, deque())
        self._trim(hits, now)
        hits.append(now)

        allowed = len(hits) <= self.max_events
        if not allowed:
            logger.warning(
                "Rate limit exceeded",
                extra={"count": len(hits), "max": self.max_events}
            )
        return allowed

    def sweep(self) -> int:
        """
        Drops identities with no events left in the window.

        Returns:
            Number of identities removed
        """
        now = self._clock()
        removed = 0
        for identity in list(self._hits):
            hits = self._hits[identity]
            self._trim(hits, now)
            if not hits:
                del self._hits[identity]
                removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._hits)


class NoopRateLimiter:
    """Allows everything. Used where rate limiting is handled upstream."""

    def hit(self, identity: str) -> bool:
        return True

    def sweep(self) -> int:
        return 0

    def __len__(self) -> int:
        return 0
