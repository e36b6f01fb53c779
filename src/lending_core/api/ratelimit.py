"""Fixed-window request limiter keyed by client IP."""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request


class RateLimitExceeded(Exception):
    def __init__(self, retry_after: int) -> None:
        super().__init__(f"rate limit exceeded, retry after {retry_after}s")
        self.retry_after = retry_after


@dataclass
class _Window:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """Allow *limit* requests per client per *window_s* seconds."""

    def __init__(self, limit: int = 100, window_s: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_s = window_s
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def hit(self, client_id: str) -> tuple[bool, int]:
        """Count one request; return ``(allowed, retry_after_s)``."""
        now = self._clock()
        self._evict(now)
        w = self._windows.get(client_id)
        if w is None or w.reset_at <= now:
            self._windows[client_id] = _Window(count=1, reset_at=now + self.window_s)
            return True, 0
        if w.count >= self.limit:
            return False, max(1, math.ceil(w.reset_at - now))
        w.count += 1
        return True, 0

    def _evict(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if w.reset_at <= now]
        for k in expired:
            del self._windows[k]

    def reset(self) -> None:
        self._windows.clear()


def client_id(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
