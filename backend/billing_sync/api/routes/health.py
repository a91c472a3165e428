import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from billing_sync.db.base import get_session_factory

logger = structlog.get_logger(__name__)

router = APIRouter()

SERVICE_NAME = "billing-sync"


@router.get("/health")
async def health_check(request: Request):
    """Liveness check; returns 503 once shutdown has begun."""
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": SERVICE_NAME},
        )
    return {"status": "healthy", "service": SERVICE_NAME}


@router.get("/ready")
async def readiness_check(request: Request):
    """Readiness check - verifies the database answers and the vault is loaded."""
    checks = {"database": False, "vault": False}

    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error("readiness_database_failed", error=str(e))

    checks["vault"] = getattr(request.app.state, "vault", None) is not None

    all_healthy = all(checks.values())
    return JSONResponse(
        status_code=200 if all_healthy else 503,
        content={"status": "ready" if all_healthy else "degraded", "checks": checks},
    )
