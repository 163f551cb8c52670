"""Fixed-window rate limiting backed by KeyValueStore counters."""

from dataclasses import dataclass
from typing import Optional

from core.exceptions import StoreUnavailable
from core.logging import get_logger
from core.store import KeyValueStore

logger = get_logger(__name__)

RATE_LIMIT_PREFIX = "ratelimit:"


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    limit: int
    reset_after: Optional[int] = None


class RateLimiter:
    """Counts hits per subject in fixed windows.

    The window starts at the first hit and is not extended by later hits,
    so a burst of up to twice the limit is possible across a boundary.

    When the store is unavailable the limiter fails open: the request is
    allowed and a warning is logged. Availability of the protected endpoint
    is preferred over strict enforcement during a store outage.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def subject_key(scope: str, subject: str) -> str:
        return f"{RATE_LIMIT_PREFIX}{scope}:{subject}"

    async def allow(self, subject_key: str, window_seconds: int, max_count: int) -> RateLimitResult:
        try:
            window = await self.store.increment_window(subject_key, window_seconds)
        except StoreUnavailable as e:
            logger.warning("Rate limiter failing open", key=subject_key, error=str(e))
            return RateLimitResult(allowed=True, remaining=max_count, limit=max_count)

        allowed = window.count <= max_count
        if not allowed:
            logger.info("Rate limit exceeded", key=subject_key,
                        count=window.count, limit=max_count)

        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, max_count - window.count),
            limit=max_count,
            reset_after=window.ttl,
        )
