"""Health check utilities for daemon monitoring.

Provides uptime tracking and storage/cache status for the /health endpoint.
"""
import time
from typing import Dict, Any, TYPE_CHECKING

import psutil

if TYPE_CHECKING:
    from core.cache import TTLCache
    from core.config import Settings
    from services.storage import StorageBackend

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
    try:
        return psutil.Process().memory_info().rss / (1024 * 1024)
    except psutil.Error:
        return 0.0


async def check_storage(storage: "StorageBackend") -> bool:
    """Check the durable medium is reachable."""
    return await storage.check_available()


async def get_health_status(
    storage: "StorageBackend",
    content_cache: "TTLCache",
    metadata_cache: "TTLCache",
    settings: "Settings"
) -> Dict[str, Any]:
    """Get comprehensive health status for /health endpoint.

    Returns:
        Dict containing status, uptime, memory, cache sizes and storage settings.
    """
    storage_healthy = await check_storage(storage)

    return {
        "status": "healthy" if storage_healthy else "degraded",
        "uptime_seconds": round(get_uptime(), 1),
        "memory_mb": round(get_memory_mb(), 1),
        "checks": {
            "storage": storage_healthy,
        },
        "caches": {
            "content": content_cache.size(),
            "metadata": metadata_cache.size(),
        },
        "storage": {
            "type": settings.storage_type,
            "file_protocol": settings.file_protocol,
            "presigned_urls": settings.s3_use_presigned_urls,
        },
    }
