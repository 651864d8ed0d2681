"""
Best-effort per-caller rate limiting.

A bounded TTL map of caller id -> last request timestamp. Lives on
``app.state`` and is injected into handlers; losing it on restart is fine,
it only blunts abuse and is not a correctness mechanism.
"""

import time
from threading import Lock
from typing import Callable

from cachetools import TTLCache


class RateLimiter:
    """Minimum-interval limiter keyed by caller identity."""

    def __init__(
        self,
        min_interval_ms: int,
        maxsize: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = min_interval_ms / 1000.0
        self._clock = clock
        # Entries older than the interval can never block anyone, so they may expire.
        self._last_seen: TTLCache = TTLCache(
            maxsize=maxsize, ttl=max(self.min_interval, 0.001), timer=clock
        )
        self._lock = Lock()

    def allow(self, caller_id: str) -> bool:
        """Record a request and report whether it is within the allowed rate."""
        now = self._clock()
        with self._lock:
            last = self._last_seen.get(caller_id)
            if last is not None and now - last < self.min_interval:
                return False
            self._last_seen[caller_id] = now
            return True

    def reset(self, caller_id: str | None = None) -> None:
        with self._lock:
            if caller_id is None:
                self._last_seen.clear()
            else:
                self._last_seen.pop(caller_id, None)
