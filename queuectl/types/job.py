"""
Job-related type definitions for internal use.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from queuectl.constants import FailureReason, JobState


class ExecutionResult(BaseModel):
    """
    Result of running a job's command.
    Returned by the executor and consumed by the retry policy.
    """

    success: bool
    stdout: str = ""
    stderr: str = ""
    reason: FailureReason | None = None
    exit_code: int | None = None
    duration_ms: float | None = None

    @classmethod
    def succeeded(cls, stdout: str = "", stderr: str = "", **kwargs: Any) -> "ExecutionResult":
        return cls(success=True, stdout=stdout, stderr=stderr, exit_code=0, **kwargs)

    @classmethod
    def failed(
        cls,
        reason: FailureReason,
        stdout: str = "",
        stderr: str = "",
        **kwargs: Any,
    ) -> "ExecutionResult":
        return cls(success=False, reason=reason, stdout=stdout, stderr=stderr, **kwargs)


@dataclass
class Resolution:
    """
    Next persisted state of a job after an execution attempt.
    Fields are column overrides applied together with the state change.
    """

    state: JobState
    fields: dict[str, Any] = field(default_factory=dict)
    delay_seconds: float | None = None

    @property
    def is_retry(self) -> bool:
        """Check if the job goes back to the queue."""
        return self.state == JobState.FAILED
