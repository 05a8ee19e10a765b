"""
Retry and backoff policy.

Turns an execution outcome into the job's next persisted state: completed,
failed with a delayed run_at, or dead once the attempt budget is spent.
"""

from datetime import datetime, timedelta

from queuectl.constants import JobState
from queuectl.db.models import Job
from queuectl.types.job import ExecutionResult, Resolution


def compute_backoff_seconds(base: float, attempts: int, max_seconds: float) -> float:
    """
    Delay before the next retry: base ** attempts, capped at max_seconds.

    Args:
        base: Exponent base from the config table.
        attempts: Attempts made so far, including the one that just failed.
        max_seconds: Upper bound on the delay.

    Returns:
        Delay in seconds.
    """
    try:
        delay = float(base) ** attempts
    except OverflowError:
        return max_seconds
    return min(delay, max_seconds)


def resolve_outcome(
    job: Job,
    result: ExecutionResult,
    backoff_base: float,
    now: datetime,
    max_backoff_seconds: float,
) -> Resolution:
    """
    Decide the next state of a job after one execution attempt.

    Every outcome consumes one attempt. A failure that brings attempts up to
    max_retries is final.

    Args:
        job: The job as claimed (attempts not yet incremented).
        result: Outcome of the attempt.
        backoff_base: Current backoff_base config value.
        now: Decision time.
        max_backoff_seconds: Cap on the retry delay.

    Returns:
        Resolution with the new state and the columns to write.
    """
    attempts = job.attempts + 1
    fields = {
        "attempts": attempts,
        "stdout": result.stdout,
        "stderr": result.stderr,
    }

    if result.success:
        return Resolution(state=JobState.COMPLETED, fields=fields)

    if attempts >= job.max_retries:
        return Resolution(state=JobState.DEAD, fields=fields)

    delay = compute_backoff_seconds(backoff_base, attempts, max_backoff_seconds)
    fields["run_at"] = now + timedelta(seconds=delay)
    return Resolution(state=JobState.FAILED, fields=fields, delay_seconds=delay)
