"""
Liveness and metrics routes for the dashboard.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from queuectl import __version__
from queuectl.api.dependencies import get_async_session
from queuectl.db import JobRepository
from queuectl.observability.metrics import get_metrics
from queuectl.types.api import HealthResponse
from queuectl.utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Queue health",
    description="Whether the job store answers, with the number of jobs per state.",
)
async def health_check(
    session: AsyncSession = Depends(get_async_session),
) -> HealthResponse:
    """
    Count jobs per state as a store round trip.

    A store that cannot be read reports "degraded" with no counts, so the
    dashboard stays up while the store is locked or missing.
    """
    try:
        jobs = await JobRepository(session).get_job_stats()
    except SQLAlchemyError as e:
        logger.warning("Health check could not read the job store", extra={"error": str(e)})
        return HealthResponse(
            status="degraded",
            version=__version__,
            store="unavailable",
            jobs={},
            timestamp=utcnow(),
        )

    return HealthResponse(
        status="healthy",
        version=__version__,
        store="ok",
        jobs=jobs,
        timestamp=utcnow(),
    )


@router.get("/metrics", summary="Prometheus metrics")
async def metrics() -> Response:
    """Metrics recorded in this process (workers serve their own on metrics_port)."""
    collector = get_metrics()
    return Response(content=collector.get_metrics(), media_type=collector.get_content_type())
