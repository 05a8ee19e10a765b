"""
Job dashboard routes.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from queuectl.api.dependencies import get_async_session
from queuectl.constants import API_PREFIX, JobState
from queuectl.db import JobRepository
from queuectl.types.api import JobResponse, JobsDumpResponse, StateCount

logger = logging.getLogger(__name__)

router = APIRouter(prefix=API_PREFIX, tags=["Jobs"])


@router.get(
    "/jobs",
    response_model=JobsDumpResponse,
    summary="Dump the queue",
    description="All jobs, most recently updated first, with a count per state.",
)
async def list_jobs(
    state: JobState | None = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> JobsDumpResponse:
    """
    List jobs with a status summary.

    Args:
        state: Optional state filter for the job list.
        session: Database session.

    Returns:
        JobsDumpResponse with the summary and jobs.
    """
    repo = JobRepository(session)
    jobs = await repo.list_jobs(state=state)
    stats = await repo.get_job_stats()

    return JobsDumpResponse(
        summary=[
            StateCount(state=JobState(name), count=count)
            for name, count in stats.items()
            if count > 0
        ],
        jobs=[JobResponse.model_validate(job) for job in jobs],
    )


@router.get(
    "/jobs/{job_id}",
    response_model=JobResponse,
    summary="Get job details",
)
async def get_job(
    job_id: str,
    session: AsyncSession = Depends(get_async_session),
) -> JobResponse:
    """
    Get one job, including its last captured output.

    Raises:
        HTTPException: If the job does not exist.
    """
    job = await JobRepository(session).get_job(job_id)

    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        )

    return JobResponse.model_validate(job)
