"""Bearer-token authentication middleware for route protection."""

import secrets

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.logging import get_logger

logger = get_logger(__name__)

# Routes that require an access token
PROTECTED_PATHS = frozenset([
    "/api/auth/logout-all",
])

PROTECTED_PREFIXES = (
    "/api/addresses",
    "/api/users",
)


def _bearer_token(request: Request):
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class AuthMiddleware(BaseHTTPMiddleware):
    """Resolves the caller from a bearer token and guards protected routes.

    request.state.user_id is set whenever a valid token is presented, on
    public routes too, so handlers can personalize optional behavior.
    """

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        token = _bearer_token(request)

        payload = None
        if token:
            payload = container.auth_service().verify_access_token(token)
        request.state.user_id = payload["sub"] if payload else None

        if not self._is_protected_path(path):
            return await call_next(request)

        if not token:
            return JSONResponse(status_code=401, content={"detail": "Not authenticated"})
        if not payload:
            return JSONResponse(status_code=401, content={"detail": "Invalid or expired token"})

        settings = container.settings()
        if settings.api_gateway_key:
            api_key = request.headers.get("x-api-key", "")
            if not secrets.compare_digest(api_key.encode(), settings.api_gateway_key.encode()):
                logger.warning("Gateway key rejected", path=path)
                return JSONResponse(status_code=401, content={"detail": "Invalid API key"})
            gateway_user = request.headers.get("x-user-id")
            if gateway_user and gateway_user != payload["sub"]:
                logger.warning("Gateway user mismatch", path=path)
                return JSONResponse(status_code=401, content={"detail": "User mismatch"})

        return await call_next(request)

    def _is_protected_path(self, path: str) -> bool:
        if path in PROTECTED_PATHS:
            return True

        for prefix in PROTECTED_PREFIXES:
            if path == prefix or path.startswith(prefix + "/"):
                return True

        return False
