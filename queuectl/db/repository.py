"""
Job and config repositories for database operations.
Implements the core data access patterns for the job lifecycle.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Sequence

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from queuectl.constants import (
    CLAIMABLE_STATES,
    CONFIG_BACKOFF_BASE,
    CONFIG_MAX_RETRIES,
    DEFAULT_BACKOFF_BASE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PRIORITY,
    FINAL_STATES,
    JobState,
)
from queuectl.db.models import ConfigEntry, Job
from queuectl.exceptions import DuplicateJobError, InvalidConfigValueError
from queuectl.utils import utcnow

logger = logging.getLogger(__name__)


def _eligible(model: Any, now: datetime, stale_before: datetime) -> Any:
    """Claim filter: due and unlocked, or locked before stale_before."""
    return or_(
        and_(
            model.state.in_(CLAIMABLE_STATES),
            model.run_at <= now,
            model.locked_by.is_(None),
        ),
        and_(
            model.state == JobState.PROCESSING,
            model.locked_at < stale_before,
        ),
    )


class JobRepository:
    """
    Repository for job database operations.

    Implements atomic operations for:
    - Job submission with duplicate id detection
    - Claiming with a single compare-and-swap UPDATE
    - Stale lock rescue as part of the claim
    - State transitions fenced on the current lock
    - DLQ replay
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            session: The async database session.
        """
        self._session = session

    async def enqueue(
        self,
        job_id: str,
        command: str,
        priority: int = DEFAULT_PRIORITY,
        delay_seconds: float = 0,
        max_retries: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        """
        Add a new pending job.

        Uses INSERT ... ON CONFLICT DO NOTHING so an existing id is never
        touched.

        Args:
            job_id: Unique, client-assigned job id.
            command: Shell command to run.
            priority: Higher runs first.
            delay_seconds: Seconds before the job becomes eligible.
            max_retries: Attempt ceiling. Defaults to the config value.
            now: Enqueue time. Defaults to the current time.

        Returns:
            The created Job.

        Raises:
            DuplicateJobError: If a job with this id already exists.
            ValueError: If the id or command is empty or the delay negative.
        """
        if not job_id or not job_id.strip():
            raise ValueError("Job id cannot be empty")
        if not command or not command.strip():
            raise ValueError("Command cannot be empty")
        if delay_seconds < 0:
            raise ValueError("Delay cannot be negative")

        if max_retries is None:
            max_retries = await ConfigRepository(self._session).get_max_retries()
        elif max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        now = now or utcnow()
        stmt = insert(Job).values(
            id=job_id,
            command=command,
            state=JobState.PENDING,
            attempts=0,
            max_retries=max_retries,
            priority=priority,
            created_at=now,
            updated_at=now,
            run_at=now + timedelta(seconds=delay_seconds),
        ).on_conflict_do_nothing(
            index_elements=[Job.id]
        ).returning(Job)

        result = await self._session.execute(stmt)
        job = result.scalar_one_or_none()

        if job is None:
            raise DuplicateJobError(job_id)

        logger.info(
            "Job enqueued",
            extra={"job_id": job_id, "priority": priority, "run_at": job.run_at.isoformat()}
        )
        return job

    async def get_job(self, job_id: str) -> Job | None:
        """
        Get a job by ID.

        Args:
            job_id: The job id.

        Returns:
            The Job or None if not found.
        """
        stmt = select(Job).where(Job.id == job_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_jobs(self, state: JobState | None = None) -> Sequence[Job]:
        """
        List jobs, most recently updated first.

        Args:
            state: Optional state filter.

        Returns:
            The matching jobs.
        """
        stmt = select(Job)
        if state is not None:
            stmt = stmt.where(Job.state == state)
        stmt = stmt.order_by(Job.updated_at.desc())

        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def claim_next(
        self,
        worker_id: str,
        now: datetime | None = None,
        stale_threshold_seconds: float = 60.0,
    ) -> Job | None:
        """
        Claim the next eligible job for a worker.

        Eligible jobs are pending or failed jobs whose run_at has passed and
        which hold no lock, plus processing jobs whose lock is older than the
        stale threshold. The highest priority wins, then the oldest
        created_at.

        Selection and locking happen in one UPDATE statement that also
        re-checks eligibility, so SQLite's single writer makes it a
        compare-and-swap: of several concurrent claimants only one gets the
        row, the others get None.

        Args:
            worker_id: The claiming worker.
            now: Claim time. Defaults to the current time.
            stale_threshold_seconds: Age after which a lock is abandoned.

        Returns:
            The claimed Job or None if nothing is eligible.
        """
        now = now or utcnow()
        stale_before = now - timedelta(seconds=stale_threshold_seconds)

        candidate_job = aliased(Job, name="candidate")
        candidate = (
            select(candidate_job.id)
            .where(_eligible(candidate_job, now, stale_before))
            .order_by(candidate_job.priority.desc(), candidate_job.created_at.asc())
            .limit(1)
            .scalar_subquery()
        )

        # A rescue keeps started_at, it continues an attempt already begun
        stmt = (
            update(Job)
            .where(and_(Job.id == candidate, _eligible(Job, now, stale_before)))
            .values(
                state=JobState.PROCESSING,
                locked_by=worker_id,
                locked_at=now,
                updated_at=now,
                started_at=case(
                    (Job.state == JobState.PROCESSING, Job.started_at),
                    else_=now,
                ),
            )
            .returning(Job)
            .execution_options(synchronize_session=False, populate_existing=True)
        )

        result = await self._session.execute(stmt)
        job = result.scalar_one_or_none()

        if job is None:
            return None

        if job.was_rescued:
            logger.warning(
                "Rescued stale job",
                extra={"job_id": job.id, "worker_id": worker_id, "started_at": str(job.started_at)}
            )
        else:
            logger.info(
                "Claimed job",
                extra={"job_id": job.id, "worker_id": worker_id, "attempt": job.attempts + 1}
            )
        return job

    async def resolve(
        self,
        job_id: str,
        state: JobState,
        fields: dict[str, Any] | None = None,
        worker_id: str | None = None,
        locked_at: datetime | None = None,
        now: datetime | None = None,
    ) -> Job | None:
        """
        Move a job to a new state in one atomic update.

        The lock is always released. completed_at is stamped when the job
        enters completed or dead. When worker_id (and locked_at) are given
        the update only applies while that worker still holds that lock, so
        a worker whose job was rescued cannot overwrite the new owner's
        progress.

        Args:
            job_id: The job id.
            state: The new state. Must not be processing.
            fields: Column overrides, e.g. attempts, run_at, stdout, stderr.
            worker_id: Lock owner the caller claims to be.
            locked_at: Lock timestamp the caller received at claim time.
            now: Update time. Defaults to the current time.

        Returns:
            Updated Job or None if the job is missing or the lock was lost.
        """
        if state == JobState.PROCESSING:
            raise ValueError("Jobs enter processing only through claim_next")

        now = now or utcnow()
        values: dict[str, Any] = {
            "state": state,
            "locked_by": None,
            "locked_at": None,
            "updated_at": now,
        }
        if state in FINAL_STATES:
            values["completed_at"] = now
        values.update(fields or {})

        conditions = [Job.id == job_id]
        if worker_id is not None:
            conditions.append(Job.state == JobState.PROCESSING)
            conditions.append(Job.locked_by == worker_id)
        if locked_at is not None:
            conditions.append(Job.locked_at == locked_at)

        stmt = (
            update(Job)
            .where(and_(*conditions))
            .values(**values)
            .returning(Job)
            .execution_options(synchronize_session=False, populate_existing=True)
        )

        result = await self._session.execute(stmt)
        job = result.scalar_one_or_none()

        if job is None:
            logger.warning(
                "Job not resolved - missing or lock lost",
                extra={"job_id": job_id, "state": state.value, "worker_id": worker_id}
            )
        return job

    async def retry_from_dlq(self, job_id: str, now: datetime | None = None) -> Job | None:
        """
        Put a dead job back in the queue with a fresh attempt budget.

        Args:
            job_id: The job id.
            now: Reset time. Defaults to the current time.

        Returns:
            Updated Job or None if no dead job has this id.
        """
        now = now or utcnow()
        stmt = (
            update(Job)
            .where(and_(Job.id == job_id, Job.state == JobState.DEAD))
            .values(
                state=JobState.PENDING,
                attempts=0,
                run_at=now,
                updated_at=now,
                completed_at=None,
                locked_by=None,
                locked_at=None,
            )
            .returning(Job)
            .execution_options(synchronize_session=False, populate_existing=True)
        )

        result = await self._session.execute(stmt)
        job = result.scalar_one_or_none()

        if job:
            logger.info("Job retried from DLQ", extra={"job_id": job_id})

        return job

    async def get_job_stats(self) -> dict[str, int]:
        """
        Count jobs per state.

        Returns:
            Dictionary of state -> count, including states with no jobs.
        """
        stmt = select(Job.state, func.count()).group_by(Job.state)
        result = await self._session.execute(stmt)

        stats = {state.value: 0 for state in JobState}
        for state, count in result.all():
            stats[JobState(state).value] = count
        return stats

    async def get_average_duration(self) -> float | None:
        """
        Average execution time of completed jobs in seconds.

        Returns:
            The average, or None when no completed job has both timestamps.
        """
        elapsed = (func.julianday(Job.completed_at) - func.julianday(Job.started_at)) * 86400.0
        stmt = select(func.avg(elapsed)).where(
            and_(
                Job.state == JobState.COMPLETED,
                Job.started_at.is_not(None),
                Job.completed_at.is_not(None),
            )
        )
        result = await self._session.execute(stmt)
        average = result.scalar()
        return float(average) if average is not None else None


def _parse_max_retries(value: str) -> int:
    parsed = int(value)
    if parsed < 1:
        raise ValueError(value)
    return parsed


def _parse_backoff_base(value: str) -> float:
    parsed = float(value)
    if parsed < 1:
        raise ValueError(value)
    return parsed


# key -> (parser, description of accepted values)
CONFIG_VALIDATORS = {
    CONFIG_MAX_RETRIES: (_parse_max_retries, "an integer >= 1"),
    CONFIG_BACKOFF_BASE: (_parse_backoff_base, "a number >= 1"),
}


class ConfigRepository:
    """
    Repository for the key/value config table.

    Values are read on every call so that an administrative change takes
    effect on the next enqueue or retry decision.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_all(self) -> dict[str, str]:
        """Get every config pair."""
        result = await self._session.execute(
            select(ConfigEntry).order_by(ConfigEntry.key)
        )
        return {entry.key: entry.value for entry in result.scalars().all()}

    async def get(self, key: str) -> str | None:
        """Get a raw config value, or None for an unknown key."""
        result = await self._session.execute(
            select(ConfigEntry.value).where(ConfigEntry.key == key)
        )
        return result.scalar_one_or_none()

    async def set(self, key: str, value: str) -> bool:
        """
        Update an existing config key.

        Args:
            key: The config key.
            value: The new value.

        Returns:
            True if updated, False if the key does not exist.

        Raises:
            InvalidConfigValueError: If the value does not parse for the key.
        """
        validator = CONFIG_VALIDATORS.get(key)
        if validator is not None:
            parse, expected = validator
            try:
                parse(value)
            except ValueError:
                raise InvalidConfigValueError(key, value, expected)

        result = await self._session.execute(
            update(ConfigEntry).where(ConfigEntry.key == key).values(value=str(value))
        )
        if result.rowcount == 0:
            return False

        logger.info("Config updated", extra={"key": key, "value": value})
        return True

    async def get_max_retries(self) -> int:
        value = await self.get(CONFIG_MAX_RETRIES)
        try:
            return _parse_max_retries(value) if value is not None else DEFAULT_MAX_RETRIES
        except ValueError:
            logger.warning("Bad max_retries in config, using default", extra={"value": value})
            return DEFAULT_MAX_RETRIES

    async def get_backoff_base(self) -> float:
        value = await self.get(CONFIG_BACKOFF_BASE)
        try:
            return _parse_backoff_base(value) if value is not None else float(DEFAULT_BACKOFF_BASE)
        except ValueError:
            logger.warning("Bad backoff_base in config, using default", extra={"value": value})
            return float(DEFAULT_BACKOFF_BASE)
