"""Key-value store adapter over Redis.

Every engine in core/ talks to Redis through KeyValueStore. An adapter is
bound to one logical namespace and prefixes all keys with it, so several
namespaces can share one physical connection pool without colliding.

Connectivity failures and timeouts surface as StoreUnavailable; all other
Redis errors propagate unchanged.
"""

import asyncio
import time
from dataclasses import dataclass, asdict
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError,
    WatchError,
)

from core.config import Settings
from core.exceptions import StoreUnavailable
from core.logging import get_logger, log_store_operation

logger = get_logger(__name__)

STORE_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError, asyncio.TimeoutError)

LOCK_PREFIX = "lock:"


@dataclass
class StoreMetrics:
    """Per-instance command counters."""
    commands: int = 0
    errors: int = 0
    latency_ms: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["latency_ms"] = round(self.latency_ms, 3)
        data["avg_latency_ms"] = round(self.latency_ms / self.commands, 3) if self.commands else 0.0
        return data


@dataclass(frozen=True)
class WindowCount:
    """Counter value and remaining window after an increment."""
    count: int
    ttl: int


class KeyValueStore:
    """Namespaced async adapter over a shared Redis client."""

    def __init__(self, client: redis.Redis, namespace: str):
        self.client = client
        self.namespace = namespace
        self._metrics = StoreMetrics()

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def _run(self, operation: str, key: str, command: Awaitable[Any]) -> Any:
        """Await a single store command with metrics and error translation."""
        self._metrics.commands += 1
        start = time.perf_counter()
        try:
            return await command
        except STORE_ERRORS as e:
            self._metrics.errors += 1
            logger.warning("Store command failed", namespace=self.namespace,
                           operation=operation, key=key, error=str(e))
            raise StoreUnavailable(f"{operation} failed on '{self.namespace}': {e}") from e
        finally:
            self._metrics.latency_ms += (time.perf_counter() - start) * 1000

    # =========================================================================
    # BASIC OPERATIONS
    # =========================================================================

    async def get(self, key: str) -> Optional[str]:
        value = await self._run("get", key, self.client.get(self._key(key)))
        log_store_operation(logger, "get", key, hit=value is not None, namespace=self.namespace)
        return value

    async def set(self, key: str, value: Union[str, bytes, int], ttl: Optional[int] = None) -> None:
        """Write a value. A ttl writes value and expiry in one command."""
        await self._run("set", key, self.client.set(self._key(key), value, ex=ttl))
        log_store_operation(logger, "set", key, ttl=ttl, namespace=self.namespace)

    async def set_if_absent(self, key: str, value: Union[str, bytes, int], ttl: int) -> bool:
        created = await self._run(
            "set_if_absent", key, self.client.set(self._key(key), value, ex=ttl, nx=True)
        )
        return bool(created)

    async def delete(self, key: str) -> None:
        await self._run("delete", key, self.client.delete(self._key(key)))
        log_store_operation(logger, "delete", key, namespace=self.namespace)

    async def exists(self, key: str) -> bool:
        return bool(await self._run("exists", key, self.client.exists(self._key(key))))

    async def ttl(self, key: str) -> Optional[int]:
        """Remaining seconds to live, or None when the key is missing or has no expiry."""
        remaining = await self._run("ttl", key, self.client.ttl(self._key(key)))
        return remaining if remaining is not None and remaining >= 0 else None

    async def pop(self, key: str) -> Optional[str]:
        """Read and delete a key atomically (single-use values)."""
        return await self._run("pop", key, self.client.getdel(self._key(key)))

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key in this namespace matching a glob pattern."""

        async def _scan_and_delete() -> int:
            keys = [k async for k in self.client.scan_iter(match=self._key(pattern), count=100)]
            if not keys:
                return 0
            return await self.client.delete(*keys)

        deleted = await self._run("delete_pattern", pattern, _scan_and_delete())
        log_store_operation(logger, "delete_pattern", pattern, deleted=deleted, namespace=self.namespace)
        return deleted

    # =========================================================================
    # COUNTERS
    # =========================================================================

    async def increment_window(self, key: str, window_ttl: int) -> WindowCount:
        """Increment a windowed counter.

        The counter is created with its expiry in the same transaction, so the
        window is armed by the first increment only and never extended by
        later ones. A counter can never exist without a TTL.
        """
        full_key = self._key(key)

        async def _transaction() -> WindowCount:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.set(full_key, 0, ex=window_ttl, nx=True)
                pipe.incr(full_key)
                pipe.ttl(full_key)
                _, count, remaining = await pipe.execute()
            return WindowCount(count=int(count), ttl=max(int(remaining), 0))

        result = await self._run("increment", key, _transaction())
        log_store_operation(logger, "increment", key, count=result.count, namespace=self.namespace)
        return result

    async def increment(self, key: str, window_ttl: int) -> int:
        return (await self.increment_window(key, window_ttl)).count

    # =========================================================================
    # LOCKS
    # =========================================================================

    async def acquire_lock(self, key: str, ttl: int, token: str = "1") -> bool:
        """Set lock:<key> only if absent. Returns True when acquired."""
        lock_key = LOCK_PREFIX + key
        acquired = await self._run(
            "acquire_lock", lock_key, self.client.set(self._key(lock_key), token, ex=ttl, nx=True)
        )
        log_store_operation(logger, "acquire_lock", lock_key, acquired=bool(acquired), namespace=self.namespace)
        return bool(acquired)

    async def release_lock(self, key: str, token: Optional[str] = None) -> bool:
        """Release lock:<key>.

        With a token the lock is deleted only while it still holds that token
        (WATCH/MULTI compare-and-delete). Without one it is deleted outright.
        """
        lock_key = LOCK_PREFIX + key
        full_key = self._key(lock_key)

        if token is None:
            deleted = await self._run("release_lock", lock_key, self.client.delete(full_key))
            return bool(deleted)

        async def _compare_and_delete() -> bool:
            async with self.client.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(full_key)
                    current = await pipe.get(full_key)
                    if current != token:
                        return False
                    pipe.multi()
                    pipe.delete(full_key)
                    await pipe.execute()
                    return True
                except WatchError:
                    return False

        released = await self._run("release_lock", lock_key, _compare_and_delete())
        log_store_operation(logger, "release_lock", lock_key, released=released, namespace=self.namespace)
        return released

    # =========================================================================
    # HEALTH & METRICS
    # =========================================================================

    async def ping(self) -> bool:
        try:
            return bool(await self._run("ping", "", self.client.ping()))
        except StoreUnavailable:
            return False

    def get_metrics(self) -> Dict[str, Any]:
        return {"namespace": self.namespace, **self._metrics.as_dict()}

    def reset_metrics(self) -> None:
        self._metrics = StoreMetrics()


ClientFactory = Callable[..., redis.Redis]


class StoreRegistry:
    """Owns Redis connection pools and the namespaced adapters built on them.

    get() is idempotent per (host, port, db, namespace). All namespaces on the
    same (host, port, db) share one client and therefore one pool.
    """

    def __init__(self, settings: Settings, client_factory: Optional[ClientFactory] = None):
        self.settings = settings
        self._client_factory = client_factory or self._create_client
        self._clients: Dict[Tuple[str, int, int], redis.Redis] = {}
        self._stores: Dict[Tuple[str, int, int, str], KeyValueStore] = {}

    def _create_client(self, host: str, port: int, db: int) -> redis.Redis:
        retry = Retry(ExponentialBackoff(cap=2.0, base=0.05), self.settings.redis_max_retries)
        return redis.Redis(
            host=host,
            port=port,
            db=db,
            password=self.settings.redis_password,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=self.settings.redis_socket_timeout,
            socket_connect_timeout=self.settings.redis_connect_timeout,
            retry=retry,
            retry_on_error=[RedisConnectionError, RedisTimeoutError],
        )

    def get(self, namespace: str, host: Optional[str] = None,
            port: Optional[int] = None, db: Optional[int] = None) -> KeyValueStore:
        host = host or self.settings.redis_host
        port = port or self.settings.redis_port
        db = self.settings.redis_db if db is None else db

        store_id = (host, port, db, namespace)
        store = self._stores.get(store_id)
        if store is not None:
            return store

        client_id = (host, port, db)
        client = self._clients.get(client_id)
        if client is None:
            client = self._client_factory(host=host, port=port, db=db)
            self._clients[client_id] = client
            logger.info("Store client created", host=host, port=port, db=db)

        store = KeyValueStore(client, namespace)
        self._stores[store_id] = store
        return store

    def _label(self, store_id: Tuple[str, int, int, str]) -> str:
        host, port, db, namespace = store_id
        default = (self.settings.redis_host, self.settings.redis_port, self.settings.redis_db)
        if (host, port, db) == default:
            return namespace
        return f"{namespace}@{host}:{port}/{db}"

    def stores(self) -> Dict[str, KeyValueStore]:
        """Adapters by label: the namespace, qualified with its server when not the default one."""
        return {self._label(store_id): store for store_id, store in self._stores.items()}

    async def ping_all(self) -> Dict[str, bool]:
        return {label: await store.ping() for label, store in self.stores().items()}

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        return {label: store.get_metrics() for label, store in self.stores().items()}

    async def close(self) -> None:
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()
        self._stores.clear()
        logger.info("Store connections closed")
