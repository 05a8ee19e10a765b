"""
SQLAlchemy database models.
Defines the jobs and config tables.
"""

from datetime import datetime

from sqlalchemy import DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from queuectl.constants import JobState
from queuectl.utils import utcnow


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Job(Base):
    """
    Job model representing one shell command in the queue.

    This is the authoritative source of truth for job state.
    All job lifecycle transitions are managed through this table.

    Key constraints:
    - id is client-assigned, unique and never changes
    - locked_by is set exactly while the job is processing
    - locked_at dates the current lock; a lock older than the stale
      threshold may be taken over by another worker
    """

    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    command: Mapped[str] = mapped_column(Text, nullable=False)

    state: Mapped[JobState] = mapped_column(
        Enum(JobState, name="job_state", native_enum=False, create_constraint=True,
             values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=JobState.PENDING,
    )

    # Retry tracking
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    # Higher runs first
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Output of the most recent attempt
    stdout: Mapped[str | None] = mapped_column(Text, nullable=True)
    stderr: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps (naive UTC)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    run_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    # Lock management
    locked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        # Index for queue polling
        Index("ix_jobs_dispatch", "state", "run_at", "priority", "created_at"),
        # Index for stale lock checks
        Index("ix_jobs_locked_at", "locked_at"),
        Index("ix_jobs_updated_at", "updated_at"),
    )

    @property
    def is_locked(self) -> bool:
        """Check if a worker currently owns the job."""
        return self.locked_by is not None

    @property
    def was_rescued(self) -> bool:
        """True when the current lock was taken over from another worker."""
        return self.locked_at is not None and self.started_at != self.locked_at

    @property
    def remaining_attempts(self) -> int:
        """Get remaining execution attempts."""
        return max(0, self.max_retries - self.attempts)

    @property
    def duration_seconds(self) -> float | None:
        """Duration of the last attempt, once the job has finished."""
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def __repr__(self) -> str:
        return (
            f"Job(id={self.id}, state={self.state}, "
            f"attempts={self.attempts}/{self.max_retries}, priority={self.priority})"
        )


class ConfigEntry(Base):
    """A queue tunable in the key/value config table."""

    __tablename__ = "config"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"ConfigEntry({self.key}={self.value})"
