"""Cache-aside engine with best-effort stampede protection.

Read path:
    hit  -> return cached value, no lock, no compute
    miss -> take lock:<key>; the winner computes and writes, losers back off
            once, re-read, and compute uncached if the entry is still missing

Store outages degrade to calling compute directly. Errors raised by compute
always propagate and are never cached.
"""

import asyncio
import hashlib
import json
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from core.exceptions import StoreUnavailable
from core.logging import get_logger
from core.store import KeyValueStore

logger = get_logger(__name__)

CACHE_PREFIX = "cache:"
MAX_KEY_PART_LENGTH = 64

ComputeFn = Callable[[], Awaitable[Any]]

# Distinguishes an absent entry from a cached JSON null
_MISS = object()


def normalize_key_part(part: Any, fold_case: bool = True) -> str:
    """Trim (and optionally lowercase) a key component; hash it when it is long."""
    if part is None:
        return "default"
    text = " ".join(str(part).split())
    if fold_case:
        text = text.lower()
    if len(text) > MAX_KEY_PART_LENGTH:
        return hashlib.sha256(text.encode("utf-8")).hexdigest()
    return text or "default"


def cache_key(operation: str, *parts: Any, fold_case: bool = True) -> str:
    """Build cache:<operation>:<part>:<part>... for an engine-owned entry.

    Pass fold_case=False for opaque identifiers that are case-sensitive.
    """
    normalized = ":".join(normalize_key_part(p, fold_case) for p in parts)
    return f"{CACHE_PREFIX}{operation}:{normalized}"


class CacheAside:
    """TTL cache in front of an expensive async computation."""

    def __init__(self, store: KeyValueStore, default_ttl: int = 3600,
                 lock_ttl: int = 10, backoff_seconds: float = 0.05):
        self.store = store
        self.default_ttl = default_ttl
        self.lock_ttl = lock_ttl
        self.backoff_seconds = backoff_seconds
        self._stats = {"hits": 0, "misses": 0, "computes": 0, "degraded": 0}

    async def _read(self, key: str) -> Any:
        raw = await self.store.get(key)
        if raw is None:
            return _MISS
        return json.loads(raw)

    async def _write(self, key: str, value: Any, ttl: int) -> None:
        try:
            await self.store.set(key, json.dumps(value, default=str), ttl=ttl)
        except StoreUnavailable as e:
            logger.warning("Cache write skipped", key=key, error=str(e))

    async def _compute(self, compute_fn: ComputeFn) -> Any:
        self._stats["computes"] += 1
        return await compute_fn()

    async def get_or_compute(self, key: str, compute_fn: ComputeFn,
                             ttl: Optional[int] = None) -> Any:
        ttl = ttl or self.default_ttl

        try:
            cached = await self._read(key)
        except StoreUnavailable:
            self._stats["degraded"] += 1
            return await self._compute(compute_fn)

        if cached is not _MISS:
            self._stats["hits"] += 1
            return cached
        self._stats["misses"] += 1

        token = str(uuid.uuid4())
        try:
            acquired = await self.store.acquire_lock(key, self.lock_ttl, token=token)
        except StoreUnavailable:
            self._stats["degraded"] += 1
            return await self._compute(compute_fn)

        if acquired:
            try:
                value = await self._compute(compute_fn)
                await self._write(key, value, ttl)
                return value
            finally:
                try:
                    await self.store.release_lock(key, token=token)
                except StoreUnavailable as e:
                    logger.warning("Cache lock release failed", key=key, error=str(e))

        await asyncio.sleep(self.backoff_seconds)
        try:
            cached = await self._read(key)
        except StoreUnavailable:
            cached = _MISS
        if cached is not _MISS:
            self._stats["hits"] += 1
            return cached

        logger.debug("Cache fill still pending, computing uncached", key=key)
        return await self._compute(compute_fn)

    async def invalidate(self, key: str) -> None:
        await self.store.delete(key)

    async def invalidate_pattern(self, pattern: str) -> int:
        return await self.store.delete_pattern(pattern)

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)
