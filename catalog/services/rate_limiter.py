"""Sliding-window rate limiter, keyed by caller (user id or IP)."""

import time
from collections import defaultdict
from collections.abc import Callable


class RateLimiter:
    """Allows ``max_requests`` per ``window_seconds`` for each key."""

    def __init__(self, max_requests: int, window_seconds: int = 60,
                 clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window = window_seconds
        self._clock = clock
        self._hits: dict[str, list[float]] = defaultdict(list)

    def is_limited(self, key: str) -> bool:
        now = self._clock()
        window_start = now - self.window
        # Remove expired entries
        hits = [t for t in self._hits[key] if t > window_start]
        if len(hits) >= self.max_requests:
            self._hits[key] = hits
            return True
        hits.append(now)
        self._hits[key] = hits
        return False

    def reset(self, key: str | None = None):
        if key is None:
            self._hits.clear()
        else:
            self._hits.pop(key, None)
