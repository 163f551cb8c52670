"""
Accounts backend: users, delivery addresses, sessions, phone verification
and address autocomplete.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from constants import STORE_NAMESPACES
from core.container import container
from core.exceptions import ServiceError, TooManyAttempts
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from middleware.auth import AuthMiddleware
from routers import addresses, auth, location, phone_verification, users

settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)

# Suppress noisy loggers
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("twilio.http_client").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting accounts service")
    set_startup_time()

    await container.database().startup()

    registry = container.store_registry()
    for namespace in sorted(STORE_NAMESPACES):
        store = registry.get(namespace)
        if not await store.ping():
            # Engines degrade per their failure policy until the store returns
            logger.warning("Store unreachable at startup", namespace=namespace)

    logger.info("Services started successfully")
    yield

    await registry.close()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


app = FastAPI(
    title="Accounts Service",
    version="1.0.0",
    description="User accounts, addresses, sessions, phone verification and address autocomplete",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    headers = {}
    if isinstance(exc, TooManyAttempts) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)

    if exc.status_code >= 500:
        logger.error("Service error", path=request.url.path,
                     error_type=type(exc).__name__, error=str(exc))
        detail = exc.public_message
    else:
        detail = str(exc) or exc.public_message

    return ORJSONResponse(status_code=exc.status_code, content={"detail": detail}, headers=headers)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception", path=request.url.path,
                         error_type=type(e).__name__, exc_info=True)
            return ORJSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"detail": "Internal server error"}
            )


app.add_middleware(AuthMiddleware)
app.add_middleware(CatchAllExceptionsMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(addresses.router)
app.include_router(phone_verification.router)
app.include_router(location.router)


@app.get("/health")
async def health_check():
    """Database and store reachability."""
    return await get_health_status(
        container.database(),
        container.store_registry(),
        settings
    )


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting accounts service",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
        loop="uvloop",
        proxy_headers=True,
        forwarded_allow_ips=settings.forwarded_allow_ips
    )
