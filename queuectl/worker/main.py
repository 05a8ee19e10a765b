"""
Worker process for executing jobs.

The worker claims jobs from the store one at a time, runs their commands,
and writes back the outcome decided by the retry policy.
"""

import asyncio
import logging
import os
import signal
import sys
import time

from queuectl.config import get_settings
from queuectl.constants import SPAN_CLAIM_JOB, SPAN_EXECUTE_JOB, SPAN_RESOLVE_JOB, FailureReason
from queuectl.db import ConfigRepository, Database, Job, JobRepository
from queuectl.exceptions import StoreUnavailableError
from queuectl.observability.logging import bind_context, setup_logging
from queuectl.observability.metrics import get_metrics, setup_metrics
from queuectl.observability.tracing import job_span, set_job_attributes, setup_tracing
from queuectl.types.job import ExecutionResult
from queuectl.utils import utcnow
from queuectl.worker.executor import execute_command
from queuectl.worker.retry import resolve_outcome

logger = logging.getLogger(__name__)


class Worker:
    """
    Job worker that polls for and executes jobs.

    Features:
    - Atomic claim with stale lock rescue
    - One job at a time; no delay between consecutive jobs
    - Cooperative stop that never interrupts a running command
    - Retry and DLQ handling through the retry policy
    """

    def __init__(
        self,
        db: Database,
        worker_id: str | None = None,
        poll_interval: float | None = None,
        job_timeout: float | None = None,
        stale_lock_seconds: float | None = None,
        error_pause: float | None = None,
    ):
        """
        Initialize the worker.

        Args:
            db: The job store handle.
            worker_id: Unique worker identifier. Defaults to hostname + PID.
            poll_interval: Seconds to wait when no job is eligible.
            job_timeout: Seconds a command may run.
            stale_lock_seconds: Age after which another worker's lock is
                considered abandoned.
            error_pause: Seconds to wait after an unexpected error.
        """
        settings = get_settings()

        self.db = db
        self.worker_id = worker_id or f"{os.uname().nodename}-{os.getpid()}"
        self.poll_interval = poll_interval if poll_interval is not None else settings.worker_poll_interval_seconds
        self.job_timeout = job_timeout if job_timeout is not None else settings.worker_job_timeout_seconds
        self.stale_lock_seconds = (
            stale_lock_seconds if stale_lock_seconds is not None else settings.worker_stale_lock_seconds
        )
        self.error_pause = error_pause if error_pause is not None else settings.worker_error_pause_seconds
        self.backoff_max_seconds = settings.backoff_max_seconds

        self._running = False
        self._metrics = get_metrics()

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run the worker loop until stop() is called."""
        logger.info("Worker starting", extra={"worker_id": self.worker_id})

        self._running = True

        while self._running:
            processed = await self.run_once()

            # Claim again straight away after a job, otherwise wait
            if not processed and self._running:
                await asyncio.sleep(self.poll_interval)

        logger.info("Worker stopped", extra={"worker_id": self.worker_id})

    async def stop(self) -> None:
        """Stop after the current job, if any, has been resolved."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._running = False

    async def run_once(self) -> bool:
        """
        Run one claim, execute, resolve cycle.

        Unexpected errors are logged. A job held at that point is failed
        through the retry policy so it does not stay locked, then the worker
        pauses briefly.

        Returns:
            True if a job was claimed.
        """
        job: Job | None = None
        try:
            job = await self._claim()
            if job is None:
                return False
            await self._process(job)
            return True
        except Exception as e:
            logger.exception(
                f"Error in worker loop: {e}",
                extra={"worker_id": self.worker_id, "job_id": job.id if job else None}
            )
            if job is not None:
                await self._fail_held_job(job, e)
            await asyncio.sleep(self.error_pause)
            return job is not None

    async def _claim(self) -> Job | None:
        """
        Claim the next eligible job.

        A locked store is the same as an empty queue here.
        """
        with job_span(SPAN_CLAIM_JOB, worker_id=self.worker_id) as span:
            try:
                async with self.db.session() as session:
                    job = await JobRepository(session).claim_next(
                        worker_id=self.worker_id,
                        now=utcnow(),
                        stale_threshold_seconds=self.stale_lock_seconds,
                    )
            except StoreUnavailableError as e:
                logger.debug(
                    "Store busy, skipping claim",
                    extra={"worker_id": self.worker_id, "error": str(e)}
                )
                return None

            if job is not None:
                set_job_attributes(span, job_id=job.id, rescued=job.was_rescued)
                self._metrics.record_job_claimed(self.worker_id, rescued=job.was_rescued)
            return job

    async def _process(self, job: Job) -> None:
        """
        Execute a claimed job and persist the outcome.

        Args:
            job: The claimed job.
        """
        logger.info(
            "Executing job",
            extra={
                "job_id": job.id,
                "command": job.command,
                "attempt": job.attempts + 1,
                "max_retries": job.max_retries,
            }
        )

        with job_span(SPAN_EXECUTE_JOB, job_id=job.id, attempt=job.attempts + 1) as span:

            result = await execute_command(job.command, self.job_timeout)

            set_job_attributes(
                span,
                success=result.success,
                exit_code=result.exit_code,
                reason=result.reason.value if result.reason else None,
            )

        if result.success:
            logger.info(
                "Job succeeded",
                extra={"job_id": job.id, "duration_ms": result.duration_ms, "stdout": result.stdout}
            )
        else:
            logger.warning(
                "Job failed",
                extra={
                    "job_id": job.id,
                    "reason": result.reason.value if result.reason else None,
                    "exit_code": result.exit_code,
                    "stderr": result.stderr,
                }
            )

        await self._resolve(job, result)

    async def _resolve(self, job: Job, result: ExecutionResult) -> None:
        """Apply the retry policy and write the new state, fenced on our lock."""
        with job_span(SPAN_RESOLVE_JOB, job_id=job.id, worker_id=self.worker_id) as span:

            async with self.db.session() as session:
                # Read fresh so config changes apply to the next decision
                backoff_base = await ConfigRepository(session).get_backoff_base()

                now = utcnow()
                resolution = resolve_outcome(
                    job,
                    result,
                    backoff_base=backoff_base,
                    now=now,
                    max_backoff_seconds=self.backoff_max_seconds,
                )

                updated = await JobRepository(session).resolve(
                    job.id,
                    resolution.state,
                    resolution.fields,
                    worker_id=self.worker_id,
                    locked_at=job.locked_at,
                    now=now,
                )

            set_job_attributes(span, state=resolution.state.value, fenced_out=updated is None)

        if updated is None:
            logger.warning(
                "Lock lost before the result was saved, discarding it",
                extra={"job_id": job.id, "worker_id": self.worker_id}
            )
            self._metrics.record_lost_lock(self.worker_id)
            return

        self._metrics.record_job_finished(
            state=resolution.state.value,
            duration_seconds=(result.duration_ms or 0.0) / 1000,
        )

        if resolution.is_retry:
            logger.warning(
                "Job scheduled for retry",
                extra={
                    "job_id": job.id,
                    "attempts": updated.attempts,
                    "delay_seconds": resolution.delay_seconds,
                    "run_at": updated.run_at.isoformat(),
                }
            )
        else:
            logger.info(
                f"Job {resolution.state.value}",
                extra={"job_id": job.id, "attempts": updated.attempts}
            )

    async def _fail_held_job(self, job: Job, error: Exception) -> None:
        """Release a job after an unexpected error, counting the attempt."""
        result = ExecutionResult.failed(FailureReason.WORKER_ERROR, stderr=f"Worker error: {error}")
        try:
            await self._resolve(job, result)
        except Exception:
            logger.exception("Failed to mark job as failed", extra={"job_id": job.id})


async def run_async(database_url: str | None = None, index: int = 0) -> None:
    """
    Run one worker until SIGTERM or SIGINT.

    Args:
        database_url: Job store URL. Defaults to the configured one.
        index: Position of this worker in its pool, used for the metrics port.
    """
    settings = get_settings()
    setup_logging()
    setup_tracing()
    setup_metrics(settings.metrics_port + index if settings.metrics_port else None)

    db = Database(database_url)
    try:
        await db.init()
    except Exception:
        logger.exception("Could not open the job store, exiting")
        sys.exit(1)

    worker = Worker(db)
    bind_context(worker_id=worker.worker_id)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(worker.stop())
        )

    started = time.monotonic()
    try:
        await worker.start()
    finally:
        await db.close()
        logger.info(
            "Worker exited",
            extra={"worker_id": worker.worker_id, "uptime_seconds": round(time.monotonic() - started, 1)}
        )


def run(database_url: str | None = None, index: int = 0) -> None:
    """Run a worker in this process."""
    asyncio.run(run_async(database_url, index))


if __name__ == "__main__":
    run()
