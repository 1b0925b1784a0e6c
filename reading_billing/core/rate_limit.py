from __future__ import annotations

import time
from collections import defaultdict, deque
from threading import Lock
from typing import Protocol

import redis

RATE_LIMIT_PREFIX = "ratelimit:"


class RateLimiter(Protocol):
    def allow(self, key: str) -> bool: ...


class SlidingWindowRateLimiter:
    """Per-process limiter; only correct when a single instance serves traffic."""

    def __init__(self, *, max_requests: int, window_seconds: float = 60.0) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._events: dict[str, deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def allow(self, key: str) -> bool:
        now = time.monotonic()
        with self._lock:
            bucket = self._events[key]
            cutoff = now - self.window_seconds
            while bucket and bucket[0] < cutoff:
                bucket.popleft()

            if len(bucket) >= self.max_requests:
                return False

            bucket.append(now)
            return True


class RedisRateLimiter:
    """Fixed-window counter shared by every instance through Redis.

    The first hit of a window creates the key and sets its TTL, later hits only
    increment it, so the counter disappears on its own when the window closes.
    """

    def __init__(self, client: redis.Redis, *, max_requests: int, window_seconds: int = 60) -> None:
        self.client = client
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    def allow(self, key: str) -> bool:
        redis_key = f"{RATE_LIMIT_PREFIX}{key}"
        count = int(self.client.incr(redis_key))
        if count == 1:
            self.client.expire(redis_key, self.window_seconds)
        return count <= self.max_requests


def build_rate_limiter(*, redis_url: str | None, max_requests: int, window_seconds: int) -> RateLimiter:
    if redis_url:
        client = redis.Redis.from_url(redis_url, decode_responses=True)
        return RedisRateLimiter(client, max_requests=max_requests, window_seconds=window_seconds)
    return SlidingWindowRateLimiter(max_requests=max_requests, window_seconds=float(window_seconds))
