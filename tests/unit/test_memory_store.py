"""
Unit tests for InMemoryAccountingStore.

The in-memory store must follow the Redis semantics the limiter and the
telemetry code rely on.
"""

import pytest

from quotawatch.core.exceptions import StoreError

pytestmark = pytest.mark.unit


class TestCountersAndTTL:
    async def test_increment_from_missing(self, memory_store):
        assert await memory_store.increment("c") == 1
        assert await memory_store.increment("c", 4) == 5
        assert await memory_store.get("c") == "5"

    async def test_ttl_semantics(self, memory_store, clock):
        assert await memory_store.ttl("missing") == -2

        await memory_store.increment("c")
        assert await memory_store.ttl("c") == -1

        await memory_store.expire("c", 10)
        clock.advance(2.5)
        assert await memory_store.ttl("c") == 8

    async def test_key_expires(self, memory_store, clock):
        await memory_store.set_with_ttl("k", "v", 5)
        clock.advance(5)

        assert await memory_store.get("k") is None
        assert await memory_store.ttl("k") == -2

    async def test_increment_keeps_ttl(self, memory_store, clock):
        await memory_store.increment("c")
        await memory_store.expire("c", 10)
        clock.advance(3)
        await memory_store.increment("c")

        assert await memory_store.ttl("c") == 7

    async def test_expire_missing_key(self, memory_store):
        assert await memory_store.expire("missing", 10) is False

    async def test_increment_non_integer_raises(self, memory_store):
        await memory_store.set_with_ttl("k", "abc", 60)

        with pytest.raises(StoreError):
            await memory_store.increment("k")


class TestCollections:
    async def test_list_push_trim_range(self, memory_store):
        for value in ("a", "b", "c", "d"):
            await memory_store.list_push_left("l", value)

        assert await memory_store.list_range("l", 0, -1) == ["d", "c", "b", "a"]

        await memory_store.list_trim("l", 0, 1)
        assert await memory_store.list_range("l", 0, -1) == ["d", "c"]
        assert await memory_store.list_range("l", 5, 10) == []

    async def test_sorted_set_descending(self, memory_store):
        await memory_store.sorted_set_increment_score("z", "a", 1)
        await memory_store.sorted_set_increment_score("z", "b", 3)
        await memory_store.sorted_set_increment_score("z", "a", 1)
        await memory_store.sorted_set_increment_score("z", "c", 1)

        assert await memory_store.sorted_set_range_descending("z", 0, -1) == [
            ("b", 3.0),
            ("a", 2.0),
            ("c", 1.0),
        ]
        assert await memory_store.sorted_set_range_descending("z", 0, 0) == [("b", 3.0)]

    async def test_hash_fields(self, memory_store):
        await memory_store.hash_increment_field("h", "x")
        await memory_store.hash_increment_field("h", "x", 2)
        await memory_store.hash_increment_field("h", "y")

        assert await memory_store.hash_get_all("h") == {"x": "3", "y": "1"}
        assert await memory_store.hash_get_all("missing") == {}

    async def test_wrong_type_raises(self, memory_store):
        await memory_store.hash_increment_field("h", "x")

        with pytest.raises(StoreError):
            await memory_store.sorted_set_increment_score("h", "m")
        with pytest.raises(StoreError):
            await memory_store.list_push_left("h", "v")

    async def test_delete_counts_existing(self, memory_store):
        await memory_store.increment("a")
        await memory_store.list_push_left("b", "x")

        assert await memory_store.delete("a", "b", "missing") == 2
        assert memory_store.keys() == []

    async def test_health_check(self, memory_store):
        health = await memory_store.health_check()

        assert health.connected is True
        assert health.to_dict()["connected"] is True
