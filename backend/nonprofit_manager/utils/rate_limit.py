"""In-memory rate limiter used by the HTTP middleware."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque


class InMemoryRateLimiter:
    """Fixed-window limiter per key (client address + bucket)."""

    def __init__(self):
        self._hits = defaultdict(deque)
        self._lock = threading.Lock()

    def allow(self, key: str, max_requests: int, window_seconds: int) -> tuple[bool, int, int]:
        """Record a hit for `key`.

        Returns `(allowed, retry_after_seconds, remaining)`.
        """
        now = time.monotonic()
        with self._lock:
            q = self._hits[key]
            cutoff = now - window_seconds
            while q and q[0] < cutoff:
                q.popleft()
            if len(q) >= max_requests:
                retry_after = max(1, int(window_seconds - (now - q[0])))
                return False, retry_after, 0
            q.append(now)
            remaining = max_requests - len(q)
        return True, 0, remaining

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
