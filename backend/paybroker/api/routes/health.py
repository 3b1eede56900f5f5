import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from paybroker.core.config import get_settings

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Liveness. Returns 503 while shutting down so the balancer drains us."""
    service = get_settings().app_name
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(status_code=503, content={"status": "shutting_down", "service": service})
    return {"status": "healthy", "service": service}


@router.get("/ready")
async def readiness_check():
    """Readiness: database and Redis reachable."""
    checks = {"database": False, "redis": False}

    try:
        from paybroker.db.base import get_session_factory

        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as exc:
        logger.error("readiness_database_failed", error=str(exc))

    try:
        from paybroker.db.redis import get_redis

        await get_redis().ping()
        checks["redis"] = True
    except Exception as exc:
        logger.error("readiness_redis_failed", error=str(exc))

    healthy = all(checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ready" if healthy else "degraded", "checks": checks},
    )
