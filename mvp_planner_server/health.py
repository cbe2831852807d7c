"""
Health check and monitoring endpoints for production readiness.
"""
import time
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from mvp_planner_server.config import settings
from mvp_planner_server.exceptions import KeyStoreError
from mvp_planner_server.logging_config import get_logger

# Initialize router
router = APIRouter(prefix="/api/v1", tags=["health"])


class Metrics:
    """Simple in-memory metrics storage"""
    def __init__(self):
        self.start_time = time.time()
        self.request_count = 0

    def increment_requests(self):
        self.request_count += 1

    def get_uptime_seconds(self) -> float:
        return time.time() - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        uptime = self.get_uptime_seconds()
        return {
            "uptime_seconds": round(uptime, 2),
            "uptime_human": self._format_uptime(uptime),
            "requests": {
                "total": self.request_count,
                "rate_per_second": round(self.request_count / uptime, 2) if uptime > 0 else 0,
            },
        }

    @staticmethod
    def _format_uptime(seconds: float) -> str:
        """Format uptime in human-readable format"""
        days = int(seconds // 86400)
        hours = int((seconds % 86400) // 3600)
        minutes = int((seconds % 3600) // 60)
        secs = int(seconds % 60)

        if days > 0:
            return f"{days}d {hours}h {minutes}m {secs}s"
        elif hours > 0:
            return f"{hours}h {minutes}m {secs}s"
        elif minutes > 0:
            return f"{minutes}m {secs}s"
        else:
            return f"{secs}s"


# Global metrics instance
metrics = Metrics()


async def check_key_store(store) -> Dict[str, Any]:
    """Check key store connectivity"""
    try:
        start = time.time()
        await store.ping()
        duration_ms = (time.time() - start) * 1000
        return {
            "status": "healthy",
            "backend": type(store).__name__,
            "response_time_ms": round(duration_ms, 2),
        }
    except KeyStoreError as e:
        logger = get_logger("health")
        logger.error("key_store_check_failed", error=str(e))
        return {
            "status": "unhealthy",
            "backend": type(store).__name__,
            "error": str(e),
        }


async def check_providers(services) -> Dict[str, Any]:
    """
    Report whether each provider has a usable key.

    A provider without one is "degraded", not unhealthy: requests are
    served from the offline fallback.
    """
    checks = {}
    for provider in services.rotating_client.adapters:
        try:
            key = await services.selector.select(provider)
        except KeyStoreError:
            key = None
        checks[provider] = {"status": "healthy" if key else "degraded"}
    return checks


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint.
    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "service": settings.app_name,
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """
    Readiness check endpoint.
    Returns 200 only if the key store is reachable; exhausted providers are
    reported but do not fail readiness.
    """
    logger = get_logger("health")
    services = request.app.state.services

    store_check = await check_key_store(services.store)
    checks: Dict[str, Any] = {"key_store": store_check}
    if store_check["status"] == "healthy":
        checks["providers"] = await check_providers(services)

    is_ready = store_check["status"] == "healthy"
    status_code = 200 if is_ready else 503

    response = {
        "ready": is_ready,
        "timestamp": datetime.utcnow().isoformat(),
        "checks": checks,
    }

    if not is_ready:
        logger.warning("readiness_check_failed", checks=checks)

    return JSONResponse(content=response, status_code=status_code)


@router.get("/metrics")
async def get_metrics(request: Request):
    """
    Get application metrics.
    Returns uptime, request count, per-provider invocation counters and the
    reset scheduler state.
    """
    services = request.app.state.services
    return {
        "timestamp": datetime.utcnow().isoformat(),
        "metrics": metrics.to_dict(),
        "providers": services.rotating_client.get_stats(),
        "key_reset": services.scheduler.status(),
    }


@router.get("/version")
async def get_version(request: Request):
    """
    Get application version and configuration info.
    """
    app_settings = request.app.state.services.settings
    return {
        "service": app_settings.app_name,
        "version": app_settings.app_version,
        "timestamp": datetime.utcnow().isoformat(),
        "environment": app_settings.environment,
        "debug": app_settings.debug,
        "features": {
            "rate_limiting": app_settings.rate_limit_enabled,
            "key_reset": app_settings.key_reset_enabled,
            "persistent_key_store": bool(app_settings.database_url),
            "daily_quota": app_settings.key_daily_quota,
            "max_rotations": app_settings.key_max_rotations,
            "admin_endpoints": bool(app_settings.admin_api_key),
        },
    }


# Export metrics instance for use in other modules
__all__ = ["router", "metrics"]
