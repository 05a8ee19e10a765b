"""
Worker module.
Contains the worker loop, command executor, retry policy and pool management.
"""

from queuectl.worker.executor import execute_command
from queuectl.worker.main import Worker
from queuectl.worker.retry import compute_backoff_seconds, resolve_outcome

__all__ = [
    "Worker",
    "execute_command",
    "compute_backoff_seconds",
    "resolve_outcome",
]
