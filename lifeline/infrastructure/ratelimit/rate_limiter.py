from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import redis


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int = 0


class RateLimiter(Protocol):
    def hit(self, key: str) -> RateLimitDecision: ...

    def reset(self) -> None: ...


@dataclass
class _Window:
    started_at: float
    count: int


class InMemoryRateLimiter:
    """Fixed-window counter per key, shared by every thread of the process.

    Best effort: counters vanish on restart. Rejected hits are not counted.
    """

    def __init__(
        self,
        max_requests: int = 5,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = 10_000,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_keys = max_keys
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, _Window] = {}

    def hit(self, key: str) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            window = self._windows.get(key)
            if window is None or now - window.started_at >= self.window_seconds:
                if window is None and len(self._windows) >= self.max_keys:
                    self._prune(now)
                window = _Window(started_at=now, count=0)
                self._windows[key] = window
            if window.count >= self.max_requests:
                elapsed = now - window.started_at
                retry_after = max(1, math.ceil(self.window_seconds - elapsed))
                return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)
            window.count += 1
            return RateLimitDecision(allowed=True, remaining=self.max_requests - window.count)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _prune(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now - window.started_at >= self.window_seconds]
        for key in expired:
            self._windows.pop(key, None)


class RedisRateLimiter:
    """Fixed-window counter kept in Redis so several instances share limits."""

    def __init__(
        self,
        client: Any,
        max_requests: int = 5,
        window_seconds: int = 60,
        prefix: str = "lifeline:ratelimit:",
    ) -> None:
        self.client = client
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prefix = prefix

    def hit(self, key: str) -> RateLimitDecision:
        redis_key = f"{self.prefix}{key}"
        # The window TTL is created with the key in the same MULTI block.
        pipe = self.client.pipeline(transaction=True)
        pipe.set(redis_key, 0, ex=self.window_seconds, nx=True)
        pipe.incr(redis_key)
        _, count = pipe.execute()
        count = int(count)
        if count > self.max_requests:
            self.client.decr(redis_key)
            ttl = int(self.client.ttl(redis_key))
            retry_after = ttl if 0 < ttl <= self.window_seconds else self.window_seconds
            return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)
        return RateLimitDecision(allowed=True, remaining=self.max_requests - count)

    def reset(self) -> None:
        for redis_key in self.client.scan_iter(match=f"{self.prefix}*"):
            self.client.delete(redis_key)


def build_rate_limiter(
    *,
    max_requests: int,
    window_seconds: int,
    redis_url: str | None = None,
) -> RateLimiter:
    if redis_url:
        client = redis.Redis.from_url(redis_url, decode_responses=True)
        return RedisRateLimiter(client, max_requests=max_requests, window_seconds=window_seconds)
    return InMemoryRateLimiter(max_requests=max_requests, window_seconds=window_seconds)
