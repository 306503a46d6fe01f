import logging

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings
from dependencies.db import DbSession
from schemas.api import ApiResponse, HealthStatus


logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=ApiResponse[HealthStatus])
async def health_check(db: DbSession) -> ApiResponse[HealthStatus]:
    """Liveness plus a database ping, for load balancer health checks."""
    app_name = get_settings().APP_NAME
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("Health check database ping failed: %s", e)
        return ApiResponse(
            success=False,
            data=HealthStatus(
                status="degraded", message=f"{app_name} API cannot reach the database"
            ),
            message="Health check degraded",
        )
    return ApiResponse(
        data=HealthStatus(message=f"{app_name} API is running"),
        message="Health check successful",
    )
