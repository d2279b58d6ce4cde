"""Tests for chatgate/counters — memory store and backend factory."""

from unittest.mock import patch

import chatgate.counters.factory as factory_mod
from chatgate.counters.dynamodb_store import DynamoDBCounterStore
from chatgate.counters.factory import get_counter_store
from chatgate.counters.store import MemoryCounterStore


def at(seconds: float):
    return patch("chatgate.counters.store.time.time", return_value=seconds)


class TestMemoryCounterStore:

    async def test_absent_key_is_zero(self):
        store = MemoryCounterStore()
        assert await store.get_count("nope") == 0

    async def test_increment_returns_new_value(self):
        store = MemoryCounterStore()
        with at(1000.0):
            assert await store.increment("k", ttl_seconds=61) == 1
            assert await store.increment("k", ttl_seconds=61) == 2
            assert await store.get_count("k") == 2

    async def test_expiry_set_on_first_write_only(self):
        store = MemoryCounterStore()
        with at(1000.0):
            await store.increment("k", ttl_seconds=10)
        with at(1009.0):
            await store.increment("k", ttl_seconds=10)
            assert await store.get_count("k") == 2
        with at(1010.0):
            assert await store.get_count("k") == 0

    async def test_expired_counter_restarts(self):
        store = MemoryCounterStore()
        with at(1000.0):
            await store.increment("k", ttl_seconds=5)
        with at(1006.0):
            assert await store.increment("k", ttl_seconds=5) == 1

    async def test_expired_windows_are_evicted(self):
        store = MemoryCounterStore()
        for i in range(500):
            with at(1000.0 + i):
                await store.increment(f"chat:1.2.3.4:{i}", ttl_seconds=2)
        assert len(store._counters) <= 2

    async def test_sweep_keeps_live_counters(self):
        store = MemoryCounterStore()
        with at(1000.0):
            await store.increment("long", ttl_seconds=3600)
            await store.increment("short", ttl_seconds=1)
        with at(1005.0):
            await store.increment("other", ttl_seconds=1)
            assert "short" not in store._counters
            assert await store.get_count("long") == 1
            assert await store.get_count("other") == 1

    async def test_clear(self):
        store = MemoryCounterStore()
        await store.increment("k", ttl_seconds=60)
        store.clear()
        assert await store.get_count("k") == 0


class TestCounterStoreFactory:

    def test_approximate_has_no_store(self, override_settings):
        override_settings(RATE_LIMIT_BACKEND="approximate")
        assert get_counter_store() is None

    def test_memory_backend(self, override_settings):
        override_settings(RATE_LIMIT_BACKEND="memory")
        assert isinstance(get_counter_store(), MemoryCounterStore)

    def test_dynamodb_backend(self, override_settings):
        override_settings(
            RATE_LIMIT_BACKEND="dynamodb",
            RATE_LIMIT_TABLE_NAME="limits",
            AWS_REGION="eu-west-1",
        )
        store = get_counter_store()
        assert isinstance(store, DynamoDBCounterStore)
        assert store._table_name == "limits"
        assert store._region == "eu-west-1"

    def test_singleton(self, override_settings):
        override_settings(RATE_LIMIT_BACKEND="memory")
        assert get_counter_store() is get_counter_store()

    def test_unknown_backend_has_no_store(self, override_settings):
        override_settings(RATE_LIMIT_BACKEND="redis")
        assert get_counter_store() is None
        assert factory_mod._store is None
