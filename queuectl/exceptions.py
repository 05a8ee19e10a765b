"""
Exceptions raised by the job store and its callers.
"""


class QueueError(Exception):
    """Base exception for queuectl."""
    pass


class DuplicateJobError(QueueError):
    """A job with the given id already exists."""
    def __init__(self, job_id: str):
        self.job_id = job_id
        self.message = f'A job with ID "{job_id}" already exists'
        super().__init__(self.message)


class NotFoundError(QueueError):
    """An administrative action matched nothing."""
    pass


class JobNotFoundError(NotFoundError):
    """No job with the id (in the required state)."""
    def __init__(self, job_id: str, state: str | None = None):
        self.job_id = job_id
        self.state = state
        if state:
            self.message = f"No {state} job found with ID: {job_id}"
        else:
            self.message = f"No job found with ID: {job_id}"
        super().__init__(self.message)


class ConfigKeyNotFoundError(NotFoundError):
    """Unknown config key."""
    def __init__(self, key: str):
        self.key = key
        self.message = f'Config key "{key}" not found'
        super().__init__(self.message)


class InvalidConfigValueError(QueueError):
    """Config value does not parse for its key."""
    def __init__(self, key: str, value: str, expected: str):
        self.key = key
        self.value = value
        self.message = f'Invalid value "{value}" for {key}: expected {expected}'
        super().__init__(self.message)


class StoreUnavailableError(QueueError):
    """The job store is locked or cannot be reached."""
    pass


class WorkerPoolRunningError(QueueError):
    """A worker pool recorded in the pid file is still running."""
    def __init__(self, pid_file: str, pids: list[int]):
        self.pid_file = pid_file
        self.pids = pids
        self.message = (
            f"Workers are already running (PIDs {', '.join(map(str, pids))}, "
            f"recorded in {pid_file}). Run `queuectl worker stop` first."
        )
        super().__init__(self.message)
