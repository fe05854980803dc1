"""Sliding-window rate limiter for outbound notifications."""

import math
import time
from collections.abc import Callable, Hashable

Clock = Callable[[], float]


def monotonic_ms() -> float:
    """Default clock: monotonic time in milliseconds."""
    return time.monotonic() * 1000


class RateLimiter:
    """Rate limiter to prevent notification spam.

    Keeps the timestamps of admitted notifications per key and allows at
    most ``max_per_window`` of them inside the trailing window. Stale
    timestamps are dropped as part of each admission check rather than by
    a background sweep, and denied attempts are never recorded.
    """

    def __init__(self, clock: Clock = monotonic_ms):
        self.clock = clock
        self.history: dict[Hashable, list[float]] = {}

    def _recent(self, key: Hashable, window_ms: float, now: float) -> list[float]:
        window_start = now - window_ms
        # Strictly newer than the window start; an entry exactly on the boundary has expired
        return [ts for ts in self.history.get(key, []) if ts > window_start]

    def admit(self, key: Hashable, window_ms: float, max_per_window: int) -> bool:
        """Check whether a notification for this key may be sent now.

        Args:
            key: Rate limit key, e.g. (kind, destination)
            window_ms: Length of the trailing window in milliseconds
            max_per_window: Admissions allowed inside the window

        Returns:
            True if admitted (and recorded), False if rate limited
        """
        now = self.clock()
        recent = self._recent(key, window_ms, now)

        if len(recent) < max_per_window:
            recent.append(now)
            self.history[key] = recent
            return True

        self.history[key] = recent
        return False

    def usage(self, key: Hashable, window_ms: float) -> int:
        """Number of admissions for this key inside the current window."""
        return len(self._recent(key, window_ms, self.clock()))

    def time_until_admit(
        self, key: Hashable, window_ms: float, max_per_window: int
    ) -> float | None:
        """Get milliseconds remaining until this key can be admitted again.

        Returns:
            Time remaining, None if it can be admitted now, or infinity if
            the limit allows nothing at all
        """
        if max_per_window <= 0:
            return math.inf

        now = self.clock()
        recent = self._recent(key, window_ms, now)
        if len(recent) < max_per_window:
            return None

        # The slot frees up once enough old entries fall out of the window
        oldest_blocking = recent[len(recent) - max_per_window]
        return oldest_blocking + window_ms - now

    def clear(self) -> None:
        """Forget all admission history."""
        self.history.clear()
