"""
Command execution for jobs.

Runs a job's shell command with a timeout and classifies the outcome. The
executor never retries and never touches the job store; the retry policy
decides what a failure means.
"""

import asyncio
import logging
import os
import signal
import time

from queuectl.constants import MAX_OUTPUT_CHARS, TIMEOUT_EXIT_CODE, FailureReason
from queuectl.types.job import ExecutionResult

logger = logging.getLogger(__name__)


def _clean_output(data: bytes | None) -> str:
    """Decode, trim surrounding whitespace and cap captured output."""
    if not data:
        return ""
    text = data.decode("utf-8", errors="replace").strip()
    if len(text) > MAX_OUTPUT_CHARS:
        text = text[:MAX_OUTPUT_CHARS] + "\n... [truncated]"
    return text


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    """Kill the shell and everything it started."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


async def execute_command(command: str, timeout_seconds: float) -> ExecutionResult:
    """
    Run a shell command to completion or until the timeout.

    The command runs in its own session, so a stop signal delivered to the
    worker's process group never interrupts it. On timeout the whole process
    group is killed.

    Args:
        command: Shell command line.
        timeout_seconds: Wall-clock limit for the command.

    Returns:
        ExecutionResult describing success, or the failure reason.
    """
    start = time.monotonic()

    def elapsed_ms() -> float:
        return (time.monotonic() - start) * 1000

    try:
        process = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        logger.error("Failed to spawn command", extra={"command": command, "error": str(e)})
        return ExecutionResult.failed(
            FailureReason.SPAWN_ERROR,
            stderr=str(e),
            duration_ms=elapsed_ms(),
        )

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        _kill_process_group(process)
        await process.wait()
        return ExecutionResult.failed(
            FailureReason.TIMEOUT,
            stderr=f"Command timed out after {timeout_seconds:g}s",
            exit_code=TIMEOUT_EXIT_CODE,
            duration_ms=elapsed_ms(),
        )

    out = _clean_output(stdout)
    err = _clean_output(stderr)

    if process.returncode == 0:
        return ExecutionResult.succeeded(stdout=out, stderr=err, duration_ms=elapsed_ms())

    return ExecutionResult.failed(
        FailureReason.EXIT_CODE,
        stdout=out,
        stderr=err or f"Command exited with status {process.returncode}",
        exit_code=process.returncode,
        duration_ms=elapsed_ms(),
    )
