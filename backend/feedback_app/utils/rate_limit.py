"""In-memory rate limiter for the public token endpoints."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict, deque


class InMemoryRateLimiter:
    """Fixed-window limiter per key with a bound on tracked keys.

    When more than `max_keys` distinct keys are tracked, the least
    recently seen key is dropped.
    """

    def __init__(self, max_keys: int = 10_000):
        self.max_keys = max_keys
        self._hits: "OrderedDict[str, deque]" = OrderedDict()
        self._lock = threading.Lock()

    def allow(self, key: str, max_requests: int, window_seconds: int) -> tuple[bool, int]:
        now = time.monotonic()
        with self._lock:
            q = self._hits.get(key)
            if q is None:
                q = self._hits[key] = deque()
                while len(self._hits) > self.max_keys:
                    self._hits.popitem(last=False)
            else:
                self._hits.move_to_end(key)
            cutoff = now - window_seconds
            while q and q[0] < cutoff:
                q.popleft()
            if len(q) >= max_requests:
                return False, max(1, int(window_seconds - (now - q[0])))
            q.append(now)
        return True, 0

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def __len__(self) -> int:
        return len(self._hits)
