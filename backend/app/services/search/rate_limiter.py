# backend/app/services/search/rate_limiter.py
"""
Sliding-window rate limiter for outbound provider calls.

Keeps the timestamps of accepted calls inside the trailing window; a call is
refused (not queued) when the window is already full.
"""
from collections import deque
import threading
import time
from typing import Any, Callable, Deque, Dict


class SlidingWindowRateLimiter:
    """At most ``max_calls`` accepted calls in any trailing ``window_seconds``."""

    def __init__(
        self,
        max_calls: int = 3,
        window_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._clock = clock
        self._calls: Deque[float] = deque()
        self._lock = threading.Lock()

    def _evict(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._calls and self._calls[0] <= cutoff:
            self._calls.popleft()

    def try_acquire(self) -> bool:
        """Record a call and return True, or return False if the window is full."""
        with self._lock:
            now = self._clock()
            self._evict(now)
            if len(self._calls) >= self.max_calls:
                return False
            self._calls.append(now)
            return True

    @property
    def calls_in_window(self) -> int:
        with self._lock:
            self._evict(self._clock())
            return len(self._calls)

    def reset(self) -> None:
        with self._lock:
            self._calls.clear()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            self._evict(self._clock())
            return {
                "calls_in_window": len(self._calls),
                "max_calls": self.max_calls,
                "window_seconds": self.window_seconds,
            }
