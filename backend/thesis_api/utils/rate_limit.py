"""In-memory rate limiter for the public API surface."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int


class InMemoryRateLimiter:
    """Sliding-window limiter keyed by client.

    State lives in process memory, so limits apply per worker.
    """

    def __init__(self, max_requests: int, window_seconds: int):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: dict[str, deque] = defaultdict(deque)
        self._lock = threading.Lock()

    def hit(self, key: str) -> RateDecision:
        now = time.monotonic()
        with self._lock:
            q = self._hits[key]
            cutoff = now - self.window_seconds
            while q and q[0] < cutoff:
                q.popleft()
            if len(q) >= self.max_requests:
                retry_after = max(1, int(self.window_seconds - (now - q[0])))
                return RateDecision(False, self.max_requests, 0, retry_after)
            q.append(now)
            return RateDecision(True, self.max_requests, self.max_requests - len(q), 0)

    def headers(self, decision: RateDecision) -> dict:
        out = {
            "RateLimit-Limit": str(decision.limit),
            "RateLimit-Remaining": str(decision.remaining),
        }
        if not decision.allowed:
            out["Retry-After"] = str(decision.retry_after)
        return out
