"""Tests for :mod:`core.store`."""

import asyncio

import pytest

from core.exceptions import StoreUnavailable
from core.store import KeyValueStore


async def test_set_get_delete_are_namespaced(store, registry):
    await store.set("greeting", "hello")

    assert await store.get("greeting") == "hello"
    assert await store.client.get("test:greeting") == "hello"
    assert await registry.get("other").get("greeting") is None

    await store.delete("greeting")
    assert await store.get("greeting") is None
    assert not await store.exists("greeting")


async def test_set_with_ttl_writes_expiry(store):
    await store.set("temp", "1", ttl=30)

    remaining = await store.ttl("temp")
    assert remaining is not None and 0 < remaining <= 30


async def test_ttl_is_none_for_missing_key(store):
    assert await store.ttl("missing") is None


async def test_increment_counts_from_one(store):
    results = [await store.increment("hits", 60) for _ in range(5)]
    assert results == [1, 2, 3, 4, 5]


async def test_increment_arms_ttl_only_on_first_write(store):
    """Later increments never extend or shorten the window."""
    await store.increment("hits", 100)
    window = await store.increment_window("hits", 5)

    assert window.count == 2
    assert window.ttl > 5


async def test_concurrent_increments_are_atomic(store):
    results = await asyncio.gather(*(store.increment("burst", 60) for _ in range(50)))

    assert sorted(results) == list(range(1, 51))
    assert await store.ttl("burst") is not None


async def test_acquire_lock_is_exclusive(store):
    assert await store.acquire_lock("resource", 10, token="a")
    assert not await store.acquire_lock("resource", 10, token="b")
    assert await store.get("lock:resource") == "a"


async def test_release_lock_checks_token(store):
    await store.acquire_lock("resource", 10, token="a")

    assert not await store.release_lock("resource", token="b")
    assert await store.exists("lock:resource")

    assert await store.release_lock("resource", token="a")
    assert await store.acquire_lock("resource", 10, token="b")


async def test_release_lock_without_token_deletes(store):
    await store.acquire_lock("resource", 10)
    assert await store.release_lock("resource")
    assert not await store.exists("lock:resource")


async def test_pop_is_single_use(store):
    await store.set("token", "value", ttl=60)

    assert await store.pop("token") == "value"
    assert await store.pop("token") is None


async def test_delete_pattern_only_touches_matching_keys(store):
    await store.set("cache:addresses:u1:1:20", "a")
    await store.set("cache:addresses:u1:2:20", "b")
    await store.set("cache:addresses:u2:1:20", "c")

    deleted = await store.delete_pattern("cache:addresses:u1:*")

    assert deleted == 2
    assert await store.get("cache:addresses:u2:1:20") == "c"


async def test_unreachable_store_raises_store_unavailable(down_store):
    with pytest.raises(StoreUnavailable):
        await down_store.get("anything")
    with pytest.raises(StoreUnavailable):
        await down_store.increment("anything", 10)

    assert down_store.get_metrics()["errors"] == 2


async def test_ping(store, down_store):
    assert await store.ping()
    assert not await down_store.ping()


async def test_metrics_count_commands(store):
    await store.set("a", "1")
    await store.get("a")

    metrics = store.get_metrics()
    assert metrics["namespace"] == "test"
    assert metrics["commands"] == 2
    assert metrics["errors"] == 0

    store.reset_metrics()
    assert store.get_metrics()["commands"] == 0


def test_registry_returns_same_store_per_namespace(registry):
    first = registry.get("location_service")
    again = registry.get("location_service")
    other = registry.get("phone_verification")

    assert first is again
    assert isinstance(other, KeyValueStore)
    assert other is not first
    # Namespaces on one host share a connection pool
    assert other.client is first.client


def test_registry_separates_databases(registry):
    assert registry.get("default", db=0).client is not registry.get("default", db=1).client


async def test_registry_reports_same_namespace_on_each_database(registry, settings):
    registry.get("default")
    registry.get("default", db=settings.redis_db + 1)

    other = f"default@{settings.redis_host}:{settings.redis_port}/{settings.redis_db + 1}"
    assert set(registry.stores()) == {"default", other}
    assert await registry.ping_all() == {"default": True, other: True}
    assert set(registry.get_metrics()) == {"default", other}


async def test_registry_ping_all_and_close(registry):
    registry.get("default")
    registry.get("auth")

    assert await registry.ping_all() == {"default": True, "auth": True}

    await registry.close()
    assert registry.stores() == {}
