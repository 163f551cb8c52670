"""Distributed mutual exclusion on top of KeyValueStore.

Locks are advisory and TTL-bounded: a holder that dies keeps the lock only
until the TTL elapses. Acquisition never waits; a contended lock raises
LockUnavailable immediately and the caller decides what that means.
"""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from core.exceptions import LockUnavailable, StoreUnavailable
from core.logging import get_logger
from core.store import KeyValueStore

logger = get_logger(__name__)

T = TypeVar("T")


class DistributedLock:
    """Scoped acquire/release of lock:<key> with a per-acquisition token."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    @asynccontextmanager
    async def with_lock(self, key: str, ttl_seconds: int) -> AsyncIterator[str]:
        """Hold lock:<key> for the duration of the block.

        Yields:
            Holder token

        Raises:
            LockUnavailable: If another holder has the lock
            StoreUnavailable: If the store cannot be reached to acquire
        """
        token = str(uuid.uuid4())
        if not await self.store.acquire_lock(key, ttl_seconds, token=token):
            logger.debug("Lock contended", lock=key)
            raise LockUnavailable(key)

        logger.debug("Lock acquired", lock=key, token=token[:8])
        try:
            yield token
        finally:
            try:
                released = await self.store.release_lock(key, token=token)
                if released:
                    logger.debug("Lock released", lock=key)
                else:
                    logger.warning("Lock expired before release", lock=key)
            except StoreUnavailable as e:
                # TTL reclaims it
                logger.warning("Lock release failed", lock=key, error=str(e))

    async def run(self, key: str, ttl_seconds: int, body: Callable[[], Awaitable[T]]) -> T:
        async with self.with_lock(key, ttl_seconds):
            return await body()
