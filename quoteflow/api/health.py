"""
Health check endpoints.
/health always returns 200; database trouble is reported as degraded.
"""

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from quoteflow.config import settings
from quoteflow.models.database import async_session_factory

router = APIRouter(tags=["health"])


async def _database_ok() -> tuple[bool, str]:
    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            return result.scalar() == 1, ""
    except (SQLAlchemyError, OSError) as e:
        return False, str(e)[:200]


@router.get("/health")
async def health_check():
    """Liveness: the API is up. DB connectivity is reported, not required."""
    db_ok, db_error = await _database_ok()
    response = {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.APP_VERSION,
        "database": "connected" if db_ok else "unreachable",
    }
    if db_error:
        response["database_error"] = db_error
    return response


@router.get("/health/ready")
async def readiness_check():
    """Readiness: true only if the database answers."""
    db_ok, _ = await _database_ok()
    return {"ready": db_ok}
