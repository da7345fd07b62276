"""
Status routes - Liveness probe for the load balancer.

Public endpoint (no auth).
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from structlog import get_logger

from app.config import settings
from app.db.session import Database, get_database
from app.models.api import Envelope, ErrorEnvelope, HealthResponse

logger = get_logger(__name__)
router = APIRouter(tags=["status"])


@router.get(
    "/health",
    response_model=Envelope[HealthResponse],
    responses={503: {"model": ErrorEnvelope}},
)
async def health_check(
    database: Database = Depends(get_database),
) -> Envelope[HealthResponse] | JSONResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await database.ping()
    except (SQLAlchemyError, OSError) as exc:
        logger.error("health_check_database_failed", error=str(exc))
        return JSONResponse(
            status_code=503,
            content=ErrorEnvelope(error="Database unavailable").model_dump(),
        )

    return Envelope(
        data=HealthResponse(status="healthy", database="connected", version=settings.api_version)
    )
