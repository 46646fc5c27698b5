"""
Health check endpoints
"""

from typing import Any
from fastapi import APIRouter, Request
from sqlalchemy import text

from adoption_insights.config import settings

router = APIRouter()


@router.get("/live")
async def liveness() -> Any:
    """
    Kubernetes liveness probe
    """
    return {"status": "alive", "service": "adoption-insights"}


@router.get("/ready")
async def readiness(request: Request) -> Any:
    """
    Kubernetes readiness probe - checks the database and the batch queue
    """
    checks = {
        "database": False,
        "processor": False,
    }

    try:
        async with request.app.state.session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            checks["database"] = result.scalar() == 1
    except Exception:
        pass

    processor = getattr(request.app.state, "processor", None)
    checks["processor"] = processor is not None

    return {
        "status": "ready" if all(checks.values()) else "not ready",
        "checks": checks,
        "queue_size": len(processor.queue) if processor is not None else None,
        "version": settings.APP_VERSION
    }
