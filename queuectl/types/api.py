"""
API response type definitions.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from queuectl.constants import JobState


class JobResponse(BaseModel):
    """Full job details response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    command: str
    state: JobState
    attempts: int
    max_retries: int
    priority: int
    stdout: str | None
    stderr: str | None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    updated_at: datetime
    run_at: datetime
    locked_by: str | None
    locked_at: datetime | None


class StateCount(BaseModel):
    """Number of jobs in one state."""

    state: JobState
    count: int


class JobsDumpResponse(BaseModel):
    """Queue contents with a per-state summary."""

    summary: list[StateCount]
    jobs: list[JobResponse]


class HealthResponse(BaseModel):
    """Store reachability and the job count per state."""

    status: str
    version: str
    store: str
    jobs: dict[str, int]
    timestamp: datetime
