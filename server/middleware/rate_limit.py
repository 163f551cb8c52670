"""HTTP rate limiting on top of core.rate_limit.RateLimiter.

Responses carry X-RateLimit-Limit, X-RateLimit-Remaining and
X-RateLimit-Reset; rejected requests get 429 with Retry-After.
"""

from typing import Callable, Optional, Union

from fastapi import HTTPException, Request, Response

from core.config import Settings
from core.container import container
from core.rate_limit import RateLimiter, RateLimitResult

SettingValue = Union[int, Callable[[Settings], int]]
KeyFunc = Callable[[Request], Optional[str]]

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."


def client_ip(request: Request) -> str:
    """Socket peer address.

    Forwarded headers are applied by uvicorn only for trusted proxies
    (forwarded_allow_ips), never read here.
    """
    return request.client.host if request.client else "unknown"


def user_or_ip(request: Request) -> str:
    return getattr(request.state, "user_id", None) or client_ip(request)


def rate_limit_headers(result: RateLimitResult, window_seconds: int) -> dict:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_after if result.reset_after is not None else window_seconds),
    }


async def check_rate_limit(scope: str, subject: str, max_requests: int, window_seconds: int,
                           response: Optional[Response] = None) -> Optional[RateLimitResult]:
    """Count one hit for subject in scope and raise 429 when over the limit."""
    settings = container.settings()
    if not settings.rate_limit_enabled:
        return None

    limiter: RateLimiter = container.rate_limiter()
    result = await limiter.allow(RateLimiter.subject_key(scope, subject), window_seconds, max_requests)
    headers = rate_limit_headers(result, window_seconds)

    if not result.allowed:
        raise HTTPException(
            status_code=429,
            detail=RATE_LIMIT_MESSAGE,
            headers={**headers, "Retry-After": headers["X-RateLimit-Reset"]},
        )

    if response is not None:
        response.headers.update(headers)
    return result


class RateLimit:
    """Route dependency: Depends(RateLimit("search", lambda s: s.rate_limit_search))."""

    def __init__(self, scope: str, max_requests: SettingValue,
                 window_seconds: SettingValue = lambda s: s.rate_limit_window,
                 key_func: Optional[KeyFunc] = None):
        self.scope = scope
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.key_func = key_func or client_ip

    @staticmethod
    def _resolve(value: SettingValue, settings: Settings) -> int:
        return value(settings) if callable(value) else value

    async def __call__(self, request: Request, response: Response) -> Optional[RateLimitResult]:
        settings = container.settings()
        subject = self.key_func(request) or client_ip(request)
        return await check_rate_limit(
            self.scope,
            subject,
            self._resolve(self.max_requests, settings),
            self._resolve(self.window_seconds, settings),
            response,
        )
