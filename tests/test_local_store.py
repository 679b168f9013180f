"""Tests for the in-process counter store."""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from admission.app.services.policy import Policy
from admission.app.stores.ban import DisabledBanTracker, LocalBanTracker
from admission.app.stores.base import RouteInfo
from admission.app.stores.local import LocalStore


class TestLocalStoreIncrement:
    """Tests for LocalStore.increment."""

    @pytest.mark.asyncio
    async def test_first_increment_opens_window(self, clock):
        store = LocalStore(time_window_ms=1000, clock=clock)

        record = await store.increment("client-1")

        assert record.current == 1
        assert record.ttl == 1000

    @pytest.mark.asyncio
    async def test_ttl_counts_down(self, clock):
        store = LocalStore(time_window_ms=1000, clock=clock)
        await store.increment("client-1")

        clock.advance(300)
        record = await store.increment("client-1")

        assert record.current == 2
        assert record.ttl == 700

    @pytest.mark.asyncio
    async def test_window_resets_after_expiry(self, clock):
        store = LocalStore(time_window_ms=1000, clock=clock)
        for _ in range(3):
            await store.increment("client-1")

        clock.advance(1000)
        record = await store.increment("client-1")

        assert record.current == 1
        assert record.ttl == 1000

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, clock):
        store = LocalStore(time_window_ms=1000, clock=clock)
        await store.increment("client-1")
        await store.increment("client-1")

        record = await store.increment("client-2")

        assert record.current == 1

    @pytest.mark.asyncio
    async def test_exceeding_keeps_window_by_default(self, clock):
        store = LocalStore(time_window_ms=1000, clock=clock)
        await store.increment("client-1", max_requests=1)

        clock.advance(600)
        record = await store.increment("client-1", max_requests=1)

        assert record.current == 2
        assert record.ttl == 400

    @pytest.mark.asyncio
    async def test_continue_exceeding_restarts_window(self, clock):
        store = LocalStore(time_window_ms=1000, continue_exceeding=True, clock=clock)
        await store.increment("client-1", max_requests=1)

        clock.advance(600)
        record = await store.increment("client-1", max_requests=1)

        assert record.current == 2
        assert record.ttl == 1000

        clock.advance(600)
        record = await store.increment("client-1", max_requests=1)
        assert record.current == 3

    @pytest.mark.asyncio
    async def test_continue_exceeding_within_limit_keeps_window(self, clock):
        store = LocalStore(time_window_ms=1000, continue_exceeding=True, clock=clock)
        await store.increment("client-1", max_requests=5)

        clock.advance(600)
        record = await store.increment("client-1", max_requests=5)

        assert record.ttl == 400


class TestLocalStoreEviction:
    """Tests for LRU eviction."""

    @pytest.mark.asyncio
    async def test_oldest_key_is_evicted(self, clock):
        store = LocalStore(time_window_ms=1000, max_entries=2, clock=clock)
        await store.increment("a")
        await store.increment("a")
        await store.increment("b")
        await store.increment("c")

        assert len(store) == 2
        record = await store.increment("a")
        assert record.current == 1

    @pytest.mark.asyncio
    async def test_recently_used_key_survives(self, clock):
        store = LocalStore(time_window_ms=1000, max_entries=2, clock=clock)
        await store.increment("a")
        await store.increment("b")
        await store.increment("a")
        await store.increment("c")

        record = await store.increment("a")
        assert record.current == 3


class TestLocalStoreChild:
    """Tests for per-route child stores."""

    @pytest.mark.asyncio
    async def test_child_has_own_counters(self, clock):
        store = LocalStore(time_window_ms=1000, clock=clock)
        route = RouteInfo("GET", "/items", Policy(max=3, time_window=5000))
        child = store.child(route)

        await store.increment("client-1")
        record = await child.increment("client-1")

        assert record.current == 1
        assert record.ttl == 5000

    def test_child_inherits_route_policy_settings(self, clock):
        store = LocalStore(time_window_ms=1000, max_entries=10, clock=clock)
        route = RouteInfo("POST", "/items", Policy(time_window=2000, continue_exceeding=True))

        child = store.child(route)

        assert isinstance(child, LocalStore)
        assert child.time_window_ms == 2000
        assert child.continue_exceeding is True

    def test_route_scope_name(self):
        route = RouteInfo("GET", "/items", Policy())
        assert route.scope_name == "GET /items"


class TestLocalStoreBanTracker:
    """Tests for the ban tracker a LocalStore pairs with."""

    def test_disabled_without_threshold(self, clock):
        store = LocalStore(time_window_ms=1000, clock=clock)
        assert isinstance(store.create_ban_tracker(None), DisabledBanTracker)

    def test_local_tracker_with_threshold(self, clock):
        store = LocalStore(time_window_ms=1000, clock=clock)
        tracker = store.create_ban_tracker(2)
        assert isinstance(tracker, LocalBanTracker)
        assert tracker.ban_threshold == 2


class TestLocalStoreConcurrency:
    """Tests for atomic increments."""

    @pytest.mark.asyncio
    async def test_concurrent_tasks_never_share_a_count(self, clock):
        store = LocalStore(time_window_ms=1000, clock=clock)

        records = await asyncio.gather(*(store.increment("client-1") for _ in range(100)))

        assert sorted(r.current for r in records) == list(range(1, 101))

    def test_concurrent_threads_never_share_a_count(self, clock):
        store = LocalStore(time_window_ms=60000, clock=clock)

        def hit():
            return asyncio.run(store.increment("client-1")).current

        with ThreadPoolExecutor(max_workers=8) as pool:
            currents = list(pool.map(lambda _: hit(), range(200)))

        assert sorted(currents) == list(range(1, 201))
