"""Shared fixtures for admission tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from admission.app.exceptions import StoreError
from admission.app.stores.base import ClientRecord, RouteInfo, Store
from admission.app.stores.local import LocalStore


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class CountingStore(LocalStore):
    """LocalStore that remembers every record it handed out."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = 0
        self.records: list[ClientRecord] = []

    async def increment(self, key, max_requests=None):
        self.calls += 1
        record = await super().increment(key, max_requests)
        self.records.append(record)
        return record


class FailingStore(Store):
    """Store whose backing resource is always down."""

    name = "failing"

    def __init__(self):
        self.calls = 0
        self.error = StoreError("connection refused", store=self.name)

    async def increment(self, key, max_requests=None):
        self.calls += 1
        raise self.error

    def child(self, route_info: RouteInfo) -> "FailingStore":
        return FailingStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_redis(clock):
    """Create a mock Redis client that simulates the counter script."""
    redis = MagicMock()
    redis.data = {}
    redis.expires = {}

    def _purge(key):
        if key in redis.expires and redis.expires[key] <= clock():
            redis.data.pop(key, None)
            redis.expires.pop(key, None)

    async def mock_eval(script, num_keys, key, time_window, max_requests, continue_exceeding):
        """Simulate INCREMENT_SCRIPT: INCR, PEXPIRE on first hit, PTTL."""
        _purge(key)
        current = int(redis.data.get(key, 0)) + 1
        redis.data[key] = current
        restart = continue_exceeding == "1" and max_requests >= 0 and current > max_requests
        if current == 1 or restart:
            redis.expires[key] = clock() + time_window
            return [current, time_window]
        return [current, int(redis.expires[key] - clock())]

    async def mock_incr(key):
        current = int(redis.data.get(key, 0)) + 1
        redis.data[key] = current
        return current

    async def mock_get(key):
        _purge(key)
        value = redis.data.get(key)
        return str(value).encode() if value is not None else None

    redis.eval = AsyncMock(side_effect=mock_eval)
    redis.incr = AsyncMock(side_effect=mock_incr)
    redis.get = AsyncMock(side_effect=mock_get)
    redis.aclose = AsyncMock()
    return redis


@pytest.fixture
def store_factory(clock):
    """Build CountingStores sharing the fake clock."""

    def _factory(time_window_ms: int = 1000, **kwargs) -> CountingStore:
        return CountingStore(time_window_ms=time_window_ms, clock=clock, **kwargs)

    return _factory


@pytest.fixture
def failing_store():
    return FailingStore()
