"""
Health check endpoints.

Provides system health information for monitoring.
"""

from fastapi import APIRouter, HTTPException
import structlog

from src.api.dependencies import RegistryDep
from src.core.config import settings
from src.persistence.database import check_database_health

log = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(registry: RegistryDep):
    """
    Health check endpoint.

    Returns:
        Database connectivity and the number of live sessions.
    """
    db_health = await check_database_health()
    overall_status = "healthy" if db_health["status"] == "healthy" else "unhealthy"

    return {
        "status": overall_status,
        "version": "0.1.0",
        "debug": settings.debug,
        "live_sessions": len(registry),
        "components": {"database": db_health},
    }


@router.get("/health/ready")
async def readiness():
    """Returns 200 once the database answers queries."""
    db_health = await check_database_health()
    if db_health["status"] != "healthy":
        raise HTTPException(status_code=503, detail="Database not ready")
    return {"status": "ready"}
