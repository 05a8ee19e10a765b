"""
queuectl - durable single-store job queue

Shell-command jobs with priority, delayed execution, retries with exponential
backoff and a dead letter queue, processed by a pool of worker processes that
share one SQLite job store.
"""

__version__ = "1.0.0"
