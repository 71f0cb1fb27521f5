"""
Rate limiting for the HTTP API: fixed-window counters keyed by client.
InMemoryRateLimiter suits a single process; RedisRateLimiter shares
counters across API replicas.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from redis import Redis


@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int
    window_seconds: int


STRICT = RateLimitRule(10, 60)
MODERATE = RateLimitRule(30, 60)
GENEROUS = RateLimitRule(100, 60)
LOGIN = RateLimitRule(5, 15 * 60)


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float


class RateLimiter(Protocol):
    def hit(self, key: str, rule: RateLimitRule) -> RateLimitResult: ...


class InMemoryRateLimiter:
    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._windows: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, rule: RateLimitRule) -> RateLimitResult:
        now = self.clock()
        with self._lock:
            count, reset_at = self._windows.get(key, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + rule.window_seconds
            count += 1
            self._windows[key] = (count, reset_at)
            self._purge(now)

        return RateLimitResult(
            allowed=count <= rule.max_requests,
            limit=rule.max_requests,
            remaining=max(0, rule.max_requests - count),
            reset_at=reset_at,
        )

    def _purge(self, now: float):
        expired = [k for k, (_, reset_at) in self._windows.items() if reset_at <= now]
        for k in expired:
            del self._windows[k]


class RedisRateLimiter:
    def __init__(self, redis_conn: Redis, prefix: str = "ratelimit",
                 clock: Callable[[], float] = time.time):
        self.redis = redis_conn
        self.prefix = prefix
        self.clock = clock

    def hit(self, key: str, rule: RateLimitRule) -> RateLimitResult:
        now = self.clock()
        window = int(now // rule.window_seconds)
        redis_key = f"{self.prefix}:{key}:{window}"

        pipe = self.redis.pipeline()
        pipe.incr(redis_key)
        pipe.expire(redis_key, rule.window_seconds)
        count, _ = pipe.execute()

        return RateLimitResult(
            allowed=count <= rule.max_requests,
            limit=rule.max_requests,
            remaining=max(0, rule.max_requests - count),
            reset_at=float((window + 1) * rule.window_seconds),
        )


_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    global _limiter
    if _limiter is None:
        from autopost.core.settings import settings
        if settings.rate_limit_backend == "redis":
            _limiter = RedisRateLimiter(Redis.from_url(settings.redis_url))
        else:
            _limiter = InMemoryRateLimiter()
    return _limiter
