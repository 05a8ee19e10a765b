"""
Type definitions for queuectl.
Contains input/output type definitions shared across modules.
"""

from queuectl.types.api import (
    HealthResponse,
    JobResponse,
    JobsDumpResponse,
    StateCount,
)
from queuectl.types.job import ExecutionResult, Resolution

__all__ = [
    # API types
    "JobResponse",
    "JobsDumpResponse",
    "StateCount",
    "HealthResponse",
    # Job types
    "ExecutionResult",
    "Resolution",
]
