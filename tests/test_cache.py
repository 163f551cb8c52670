"""Tests for :mod:`core.cache`."""

import asyncio
import json

import pytest

from core.cache import CacheAside, cache_key, normalize_key_part


class Counter:
    """Async compute function that records how often it ran."""

    def __init__(self, value, delay: float = 0.0, error: Exception = None):
        self.value = value
        self.delay = delay
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.value


@pytest.fixture
def cache(store) -> CacheAside:
    return CacheAside(store, default_ttl=60, lock_ttl=5, backoff_seconds=0.05)


def test_cache_key_normalizes_free_text():
    assert cache_key("autocomplete", "  123 Main St ") == "cache:autocomplete:123 main st"
    assert cache_key("autocomplete", "123   MAIN st") == cache_key("autocomplete", "123 main st")
    assert cache_key("details", "ChIJabc", fold_case=False) == "cache:details:ChIJabc"


def test_long_key_parts_are_hashed():
    part = normalize_key_part("x" * 200)
    assert len(part) == 64
    assert part == normalize_key_part("X" * 200)


async def test_hit_never_computes(cache, store):
    await store.set("cache:op:key", json.dumps({"cached": True}), ttl=60)
    compute = Counter({"cached": False})

    assert await cache.get_or_compute("cache:op:key", compute) == {"cached": True}
    assert compute.calls == 0
    assert not await store.exists("lock:cache:op:key")


async def test_miss_computes_and_writes_with_ttl(cache, store):
    compute = Counter(["a", "b"])

    assert await cache.get_or_compute("cache:op:key", compute, ttl=30) == ["a", "b"]
    assert compute.calls == 1
    assert json.loads(await store.get("cache:op:key")) == ["a", "b"]
    assert 0 < await store.ttl("cache:op:key") <= 30
    assert not await store.exists("lock:cache:op:key")

    # Served from cache afterwards
    assert await cache.get_or_compute("cache:op:key", compute) == ["a", "b"]
    assert compute.calls == 1


async def test_concurrent_misses_compute_once(cache):
    compute = Counter({"value": 42}, delay=0.02)

    results = await asyncio.gather(
        *(cache.get_or_compute("cache:op:hot", compute) for _ in range(10))
    )

    assert compute.calls == 1
    assert all(r == {"value": 42} for r in results)


async def test_compute_error_propagates_and_releases_lock(cache, store):
    compute = Counter(None, error=RuntimeError("upstream down"))

    with pytest.raises(RuntimeError, match="upstream down"):
        await cache.get_or_compute("cache:op:key", compute)

    assert not await store.exists("cache:op:key")
    assert not await store.exists("lock:cache:op:key")


async def test_contended_lock_falls_back_to_direct_compute(cache, store):
    await store.acquire_lock("cache:op:key", 5, token="someone-else")
    compute = Counter("fresh")

    assert await cache.get_or_compute("cache:op:key", compute) == "fresh"
    assert compute.calls == 1
    # The uncached path does not write
    assert not await store.exists("cache:op:key")


async def test_contended_lock_uses_value_written_during_backoff(cache, store):
    await store.acquire_lock("cache:op:key", 5, token="someone-else")
    compute = Counter("fresh")

    async def fill_later():
        await asyncio.sleep(0.01)
        await store.set("cache:op:key", json.dumps("filled"), ttl=60)

    result, _ = await asyncio.gather(cache.get_or_compute("cache:op:key", compute), fill_later())

    assert result == "filled"
    assert compute.calls == 0


async def test_store_outage_degrades_to_compute(down_store):
    cache = CacheAside(down_store, default_ttl=60)
    compute = Counter("direct")

    assert await cache.get_or_compute("cache:op:key", compute) == "direct"
    assert compute.calls == 1
    assert cache.get_stats()["degraded"] == 1


async def test_invalidate_pattern(cache, store):
    await cache.get_or_compute("cache:addresses:u1:1:20", Counter([1]))
    await cache.get_or_compute("cache:addresses:u1:2:20", Counter([2]))

    assert await cache.invalidate_pattern("cache:addresses:u1:*") == 2
    assert not await store.exists("cache:addresses:u1:1:20")


async def test_cached_null_is_a_hit(cache, store):
    compute = Counter(None)

    assert await cache.get_or_compute("cache:op:empty", compute) is None
    assert await store.get("cache:op:empty") == "null"
    assert await cache.get_or_compute("cache:op:empty", compute) is None

    assert compute.calls == 1
    assert cache.get_stats()["hits"] == 1
