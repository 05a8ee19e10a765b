"""
Worker pool management.

`start_workers` runs N worker processes in the foreground and records their
PIDs; `stop_workers` asks a running pool, found through that record, to stop.
Stopping is cooperative: every worker finishes its current job first.

Each pid file line holds a PID and that process's start time. A PID is only
signalled while a process with the same start time still owns it, so a stale
record left by a killed supervisor never reaches an unrelated process.
"""

import logging
import multiprocessing
import os
import signal
from pathlib import Path

import psutil

from queuectl.config import get_settings
from queuectl.exceptions import WorkerPoolRunningError
from queuectl.worker.main import run

logger = logging.getLogger(__name__)

# psutil start times are derived from clock ticks
START_TIME_TOLERANCE_SECONDS = 0.05


def _pid_path(pid_file: str | None) -> Path:
    return Path(pid_file or get_settings().worker_pid_file)


def _start_time(pid: int) -> float | None:
    try:
        return psutil.Process(pid).create_time()
    except (psutil.NoSuchProcess, psutil.ZombieProcess, psutil.AccessDenied):
        return None


def read_pids(pid_file: str | None = None) -> list[tuple[int, float]]:
    """
    Read the (PID, start time) records of a pool.

    The supervisor comes first, followed by its workers. Malformed lines
    are skipped.
    """
    path = _pid_path(pid_file)
    if not path.exists():
        return []
    records = []
    for line in path.read_text().splitlines():
        parts = line.split()
        if len(parts) != 2 or not parts[0].isdigit():
            continue
        try:
            records.append((int(parts[0]), float(parts[1])))
        except ValueError:
            continue
    return records


def live_pids(pid_file: str | None = None) -> list[int]:
    """PIDs from the pid file that still belong to the recorded processes."""
    pids = []
    for pid, started in read_pids(pid_file):
        current = _start_time(pid)
        if current is None:
            continue
        if abs(current - started) > START_TIME_TOLERANCE_SECONDS:
            logger.debug("PID reused by another process", extra={"pid": pid})
            continue
        pids.append(pid)
    return pids


def _write_pids(path: Path, pids: list[int]) -> None:
    lines = []
    for pid in pids:
        started = _start_time(pid)
        if started is not None:
            lines.append(f"{pid} {started!r}\n")
    path.write_text("".join(lines))


def start_workers(
    count: int,
    database_url: str | None = None,
    pid_file: str | None = None,
) -> None:
    """
    Start worker processes and wait for all of them to exit.

    SIGTERM and SIGINT received here are forwarded to the workers as SIGTERM.

    Args:
        count: Number of worker processes.
        database_url: Job store URL passed to every worker.
        pid_file: Where to record the PIDs.

    Raises:
        WorkerPoolRunningError: If the pid file names a pool that is alive.
    """
    if count < 1:
        raise ValueError("count must be at least 1")

    path = _pid_path(pid_file)
    running = live_pids(str(path))
    if running:
        raise WorkerPoolRunningError(str(path), running)
    if path.exists():
        logger.info("Removing stale pid file", extra={"pid_file": str(path)})
        path.unlink()

    processes: list[multiprocessing.Process] = []

    def _forward(signum, frame):
        logger.info("Stopping workers", extra={"signal": signal.Signals(signum).name})
        for process in processes:
            if process.is_alive():
                try:
                    os.kill(process.pid, signal.SIGTERM)
                except ProcessLookupError:
                    pass

    for index in range(count):
        process = multiprocessing.Process(
            target=run,
            args=(database_url, index),
            name=f"queuectl-worker-{index + 1}",
        )
        process.start()
        processes.append(process)
        logger.info("Started worker process", extra={"name": process.name, "pid": process.pid})

    # Handlers go in before the pid file exists, so `worker stop` always finds them
    previous = {
        sig: signal.signal(sig, _forward) for sig in (signal.SIGTERM, signal.SIGINT)
    }

    try:
        _write_pids(path, [os.getpid(), *(p.pid for p in processes)])
        for process in processes:
            process.join()
            if process.exitcode:
                logger.warning(
                    "Worker process exited with an error",
                    extra={"name": process.name, "exitcode": process.exitcode}
                )
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        path.unlink(missing_ok=True)
        logger.info("All workers stopped")


def stop_workers(pid_file: str | None = None) -> int:
    """
    Send a cooperative stop to every live process of a recorded pool.

    A pid file that names no live process is stale and is removed.

    Args:
        pid_file: The pool's PID record.

    Returns:
        Number of processes signalled.
    """
    path = _pid_path(pid_file)
    pids = live_pids(str(path))
    if not pids:
        if path.exists():
            logger.info("Removing stale pid file", extra={"pid_file": str(path)})
            path.unlink(missing_ok=True)
        return 0

    signalled = 0
    for pid in pids:
        try:
            os.kill(pid, signal.SIGTERM)
            signalled += 1
        except ProcessLookupError:
            logger.debug("Process already gone", extra={"pid": pid})
    return signalled
