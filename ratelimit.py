# ratelimit.py
import math
import threading
import time
from typing import Callable, Dict, Tuple


class FixedWindowRateLimiter:
    """Per-identifier request counter over fixed windows.

    A window opens on an identifier's first request and lasts ``window_seconds``;
    requests past ``limit`` inside it are refused until it closes.
    """

    PRUNE_THRESHOLD = 1024

    def __init__(self, limit: int, window_seconds: float = 60, clock: Callable[[], float] = time.monotonic):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.limit = limit
        self.window = window_seconds
        self._clock = clock
        # identifier -> (window_start, count)
        self._counters: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()

    def check(self, identifier: str) -> Tuple[bool, int]:
        """Count one request; returns (allowed, count in the current window)."""
        now = self._clock()
        with self._lock:
            if len(self._counters) > self.PRUNE_THRESHOLD:
                self._prune(now)
            start, count = self._counters.get(identifier, (now, 0))
            if now - start >= self.window:
                start, count = now, 0
            count += 1
            self._counters[identifier] = (start, count)
        return count <= self.limit, count

    def retry_after(self, identifier: str) -> int:
        """Whole seconds until ``identifier``'s window closes."""
        now = self._clock()
        with self._lock:
            start, _ = self._counters.get(identifier, (now, 0))
        return max(1, math.ceil(start + self.window - now))

    def _prune(self, now: float) -> None:
        stale = [k for k, (start, _) in self._counters.items() if now - start >= self.window]
        for k in stale:
            del self._counters[k]
