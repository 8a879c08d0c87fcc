from __future__ import annotations

from lifeline.infrastructure.ratelimit.rate_limiter import InMemoryRateLimiter, RedisRateLimiter


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePipeline:
    def __init__(self, client: FakeRedis, transaction: bool) -> None:
        self.client = client
        self.transaction = transaction
        self.commands: list[tuple[str, tuple, dict]] = []

    def set(self, *args, **kwargs) -> FakePipeline:
        self.commands.append(("set", args, kwargs))
        return self

    def incr(self, *args, **kwargs) -> FakePipeline:
        self.commands.append(("incr", args, kwargs))
        return self

    def execute(self) -> list:
        self.client.transactions.append(self.transaction)
        return [getattr(self.client, name)(*args, **kwargs) for name, args, kwargs in self.commands]


class FakeRedis:
    def __init__(self) -> None:
        self.values: dict[str, int] = {}
        self.ttls: dict[str, int] = {}
        self.transactions: list[bool] = []

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self, transaction)

    def set(self, key: str, value: int, ex: int | None = None, nx: bool = False) -> bool | None:
        if nx and key in self.values:
            return None
        self.values[key] = int(value)
        if ex is not None:
            self.ttls[key] = ex
        return True

    def incr(self, key: str) -> int:
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    def decr(self, key: str) -> int:
        self.values[key] -= 1
        return self.values[key]

    def ttl(self, key: str) -> int:
        return self.ttls.get(key, -1)

    def scan_iter(self, match: str):
        prefix = match.rstrip("*")
        return [key for key in list(self.values) if key.startswith(prefix)]

    def delete(self, key: str) -> int:
        self.ttls.pop(key, None)
        return 1 if self.values.pop(key, None) is not None else 0


def test_sixth_request_in_window_is_rejected_then_recovers() -> None:
    clock = FakeClock()
    limiter = InMemoryRateLimiter(max_requests=5, window_seconds=60, clock=clock)

    for _ in range(5):
        clock.advance(2)
        assert limiter.hit("10.0.0.1").allowed

    rejected = limiter.hit("10.0.0.1")
    assert rejected.allowed is False
    assert 0 < rejected.retry_after <= 60

    clock.advance(60)
    assert limiter.hit("10.0.0.1").allowed


def test_keys_are_independent() -> None:
    clock = FakeClock()
    limiter = InMemoryRateLimiter(max_requests=1, window_seconds=60, clock=clock)

    assert limiter.hit("a").allowed
    assert not limiter.hit("a").allowed
    assert limiter.hit("b").allowed


def test_rejected_hits_do_not_extend_the_window() -> None:
    clock = FakeClock()
    limiter = InMemoryRateLimiter(max_requests=1, window_seconds=60, clock=clock)
    limiter.hit("a")
    for _ in range(10):
        clock.advance(5)
        limiter.hit("a")
    clock.advance(10)
    assert limiter.hit("a").allowed


def test_reset_clears_counters() -> None:
    limiter = InMemoryRateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())
    limiter.hit("a")
    limiter.reset()
    assert limiter.hit("a").allowed


def test_redis_limiter_counts_and_reports_ttl() -> None:
    client = FakeRedis()
    limiter = RedisRateLimiter(client, max_requests=2, window_seconds=60)

    assert limiter.hit("1.2.3.4").remaining == 1
    assert limiter.hit("1.2.3.4").remaining == 0
    client.ttls["lifeline:ratelimit:1.2.3.4"] = 42

    rejected = limiter.hit("1.2.3.4")
    assert rejected.allowed is False
    assert rejected.retry_after == 42
    assert client.values["lifeline:ratelimit:1.2.3.4"] == 2

    limiter.reset()
    assert client.values == {}


def test_redis_window_ttl_is_set_with_the_first_hit() -> None:
    client = FakeRedis()
    limiter = RedisRateLimiter(client, max_requests=5, window_seconds=60)

    limiter.hit("1.2.3.4")
    assert client.ttls["lifeline:ratelimit:1.2.3.4"] == 60
    assert client.transactions == [True]

    client.ttls["lifeline:ratelimit:1.2.3.4"] = 17
    limiter.hit("1.2.3.4")
    assert client.ttls["lifeline:ratelimit:1.2.3.4"] == 17
    assert client.values["lifeline:ratelimit:1.2.3.4"] == 2
