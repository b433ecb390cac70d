"""In-memory sliding-window limiter for the document upload endpoint."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque


class UploadRateLimiter:
    """Allow at most `max_requests` hits per key inside `window_seconds`."""

    def __init__(self, max_requests: int, window_seconds: int = 60, clock=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits = defaultdict(deque)
        self._lock = threading.Lock()

    def check(self, key: str) -> tuple[bool, int]:
        """Record a hit for `key`; return (allowed, retry_after_seconds)."""
        now = self._clock()
        with self._lock:
            hits = self._hits[key]
            while hits and hits[0] <= now - self.window_seconds:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return False, max(1, int(self.window_seconds - (now - hits[0])))
            hits.append(now)
        return True, 0

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
