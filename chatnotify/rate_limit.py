"""Fixed-window rate limiting for outbound messages.

The window resets at discrete boundaries, so a burst straddling a boundary
can reach twice the capacity. Denied permits are never queued; callers drop
the message and log it.
"""

import threading
import time
from typing import Callable


class FixedWindowRateLimiter:
    """Grant at most ``capacity`` permits per ``window_seconds``.

    Args:
        capacity: Permits per window (Telegram tolerates roughly 30/min per group).
        window_seconds: Window length in seconds.
        clock: Monotonic clock in seconds; injectable for tests.
    """

    def __init__(
        self,
        capacity: int = 30,
        window_seconds: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._capacity = int(capacity)
        self._window_seconds = float(window_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._window_start = clock()
        self._count = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def _roll_window(self, now: float) -> None:
        if now >= self._window_start + self._window_seconds:
            self._window_start = now
            self._count = 0

    def try_acquire(self) -> bool:
        """Consume one permit if the current window has capacity left."""
        with self._lock:
            self._roll_window(self._clock())
            if self._count < self._capacity:
                self._count += 1
                return True
            return False

    def remaining(self) -> int:
        """Permits left in the current window."""
        with self._lock:
            self._roll_window(self._clock())
            return self._capacity - self._count


__all__ = ["FixedWindowRateLimiter"]
