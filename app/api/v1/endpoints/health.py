from fastapi import APIRouter, Request
from sqlalchemy import text
import structlog

from app.core.config import settings

logger = structlog.get_logger()

router = APIRouter()


@router.get("/status")
async def health_status():
    """Get application health status"""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "trash_retention_days": settings.TRASH_RETENTION_DAYS,
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """Kubernetes readiness check; confirms the database answers"""
    try:
        async with request.app.state.db.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Readiness check failed", error=str(e))
        return {"ready": False}
    return {"ready": True}


@router.get("/live")
async def liveness_check():
    """Kubernetes liveness check"""
    return {"alive": True}
