"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobState(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - PENDING -> PROCESSING (claimed, run_at reached)
    - FAILED -> PROCESSING (claimed, scheduled retry)
    - PROCESSING -> PROCESSING (stale lock rescued by another worker)
    - PROCESSING -> COMPLETED (success)
    - PROCESSING -> FAILED (failure, retries left)
    - PROCESSING -> DEAD (failure, retries exhausted)
    - DEAD -> PENDING (manual retry from the DLQ)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD = "dead"


# States a job can be claimed from when its run_at has passed
CLAIMABLE_STATES = (JobState.PENDING, JobState.FAILED)

# States that set completed_at on entry
FINAL_STATES = (JobState.COMPLETED, JobState.DEAD)


class FailureReason(StrEnum):
    """Why an execution attempt failed."""

    EXIT_CODE = "exit_code"
    TIMEOUT = "timeout"
    SPAWN_ERROR = "spawn_error"
    WORKER_ERROR = "worker_error"


# Config table keys
CONFIG_MAX_RETRIES = "max_retries"
CONFIG_BACKOFF_BASE = "backoff_base"

# Default values
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 2
DEFAULT_PRIORITY = 0

# Captured stdout/stderr is cut to this many characters
MAX_OUTPUT_CHARS = 64 * 1024

# Exit status conventionally reported by shells for a timed out command
TIMEOUT_EXIT_CODE = 124

# API constants
API_PREFIX = "/api"

# Metrics names
METRIC_JOBS_CLAIMED = "queuectl_jobs_claimed_total"
METRIC_JOBS_RESCUED = "queuectl_jobs_rescued_total"
METRIC_JOBS_FINISHED = "queuectl_jobs_finished_total"
METRIC_JOB_DURATION = "queuectl_job_duration_seconds"
METRIC_LOST_LOCKS = "queuectl_lost_locks_total"

# Trace span names
SPAN_CLAIM_JOB = "claim_job"
SPAN_EXECUTE_JOB = "execute_job"
SPAN_RESOLVE_JOB = "resolve_job"
