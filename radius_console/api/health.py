"""Health check endpoint."""

import logging

from fastapi import APIRouter
from sqlalchemy import text

from radius_console.api.deps import DbSession
from radius_console.core.radius import RadiusManager
from radius_console.core.users import UserManager
from radius_console.schemas.dashboard import HealthResponse
from radius_console.utils.dates import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """
    Check database connectivity and report basic row counts.

    Returns:
        Health status with console and RADIUS user counts
    """
    timestamp = utc_now().isoformat()
    try:
        db.execute(text("SELECT 1"))
        app_users = UserManager(db).count()
        radius_users = RadiusManager(db).count_users()
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return HealthResponse(status="unhealthy", timestamp=timestamp, database_connected=False)

    return HealthResponse(
        status="healthy",
        timestamp=timestamp,
        database_connected=True,
        app_users=app_users,
        radius_users=radius_users,
    )
