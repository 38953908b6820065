"""Health check endpoints for Sinoman.

Provides Kubernetes-compatible health probes:
- /health: Basic health check
- /health/live: Liveness probe (is the app running?)
- /health/ready: Readiness probe (can the app serve traffic?)

Readiness checks database connectivity, the rate-limit store and memory usage.
"""

from datetime import datetime
from typing import Any, Dict

import psutil
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from sinoman import __version__
from sinoman.api.deps import get_db, get_rate_limiter_dep
from sinoman.core.ratelimit import RateLimiter

router = APIRouter(tags=["health"])

MEMORY_WARNING_PERCENT = 85
MEMORY_CRITICAL_PERCENT = 95


def check_database(db: Session) -> Dict[str, Any]:
    """Check database connectivity."""
    try:
        db.execute(text("SELECT 1")).fetchone()
        return {"status": "healthy"}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


async def check_rate_limit_store(limiter: RateLimiter) -> Dict[str, Any]:
    """Check the rate-limit store and the sweep task."""
    try:
        await limiter.store.ping()
        return {
            "status": "healthy",
            "backend": type(limiter.store).__name__,
            "sweeper_running": limiter.sweeper_running,
        }
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


def check_memory() -> Dict[str, Any]:
    """Check memory usage."""
    try:
        memory = psutil.virtual_memory()
        percent_used = memory.percent

        status = "healthy"
        if percent_used >= MEMORY_CRITICAL_PERCENT:
            status = "critical"
        elif percent_used >= MEMORY_WARNING_PERCENT:
            status = "warning"

        return {
            "status": status,
            "available_gb": round(memory.available / (1024**3), 2),
            "percent_used": percent_used,
        }
    except Exception as e:
        return {"status": "unknown", "error": str(e)}


@router.get("/health")
async def health_check():
    """Returns 200 if the application is running."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/health/live")
async def liveness_probe():
    """
    Kubernetes liveness probe.

    Must stay fast and independent of external services.
    """
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "alive",
            "timestamp": datetime.utcnow().isoformat(),
        },
    )


@router.get("/health/ready")
async def readiness_probe(
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter_dep),
):
    """
    Kubernetes readiness probe.

    Returns 503 if the database or the rate-limit store is unreachable.
    """
    checks = {
        "database": check_database(db),
        "rate_limit_store": await check_rate_limit_store(limiter),
        "memory": check_memory(),
    }

    unhealthy = [name for name, check in checks.items() if check["status"] == "unhealthy"]

    if unhealthy:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "checks": checks,
                "failed": unhealthy,
                "timestamp": datetime.utcnow().isoformat(),
            },
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "ready",
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
