"""Health check utilities for the /health endpoint."""

import time
from typing import Any, Dict, TYPE_CHECKING

import psutil

if TYPE_CHECKING:
    from core.config import Settings
    from core.database import Database
    from core.store import StoreRegistry

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


def get_memory_mb() -> float:
    """Get current process memory usage in MB."""
    return psutil.Process().memory_info().rss / (1024 * 1024)


async def get_health_status(
    database: "Database",
    stores: "StoreRegistry",
    settings: "Settings"
) -> Dict[str, Any]:
    """Get health status for /health endpoint.

    Returns:
        Dict containing overall status, per-namespace store reachability,
        database reachability and store command metrics.
    """
    db_healthy = await database.ping()
    store_checks = await stores.ping_all()
    stores_healthy = bool(store_checks) and all(store_checks.values())

    return {
        "status": "healthy" if (db_healthy and stores_healthy) else "degraded",
        "environment": "development" if settings.debug else "production",
        "uptime_seconds": round(get_uptime(), 1),
        "memory_mb": round(get_memory_mb(), 1),
        "checks": {
            "database": db_healthy,
            "stores": store_checks,
        },
        "store_metrics": stores.get_metrics(),
    }
