"""
Unit tests for command execution.
"""

import asyncio

from queuectl.constants import MAX_OUTPUT_CHARS, TIMEOUT_EXIT_CODE, FailureReason
from queuectl.worker.executor import execute_command


class TestExecuteCommand:
    """Tests for execute_command."""

    async def test_success_captures_trimmed_output(self):
        """Test exit status 0 is a success with trimmed stdout."""
        result = await execute_command("echo '  hello  '", timeout_seconds=5)

        assert result.success is True
        assert result.reason is None
        assert result.exit_code == 0
        assert result.stdout == "hello"
        assert result.stderr == ""
        assert result.duration_ms >= 0

    async def test_nonzero_exit(self):
        """Test a non-zero status is a failure with its stderr."""
        result = await execute_command("echo oops >&2; exit 3", timeout_seconds=5)

        assert result.success is False
        assert result.reason == FailureReason.EXIT_CODE
        assert result.exit_code == 3
        assert result.stderr == "oops"

    async def test_nonzero_exit_without_stderr(self):
        """Test a silent failure still explains itself."""
        result = await execute_command("exit 1", timeout_seconds=5)

        assert result.success is False
        assert "status 1" in result.stderr

    async def test_unknown_command(self):
        """Test the shell's 'not found' status is an ordinary failure."""
        result = await execute_command("definitely-not-a-command-xyz", timeout_seconds=5)

        assert result.success is False
        assert result.reason == FailureReason.EXIT_CODE
        assert result.exit_code == 127

    async def test_timeout_kills_command(self):
        """Test a command over the limit is killed and reported."""
        result = await execute_command("sleep 10", timeout_seconds=0.2)

        assert result.success is False
        assert result.reason == FailureReason.TIMEOUT
        assert result.exit_code == TIMEOUT_EXIT_CODE
        assert result.duration_ms < 5000

    async def test_output_truncated(self):
        """Test very large output is capped."""
        result = await execute_command(
            f"head -c {MAX_OUTPUT_CHARS * 2} /dev/zero | tr '\\0' 'a'", timeout_seconds=5
        )

        assert result.success is True
        assert result.stdout.endswith("[truncated]")
        assert len(result.stdout) < MAX_OUTPUT_CHARS + 100

    async def test_spawn_error(self, monkeypatch):
        """Test a failure to start the shell is reported, not raised."""
        async def fail_spawn(*args, **kwargs):
            raise OSError("no shell")

        monkeypatch.setattr(asyncio, "create_subprocess_shell", fail_spawn)

        result = await execute_command("echo hi", timeout_seconds=5)

        assert result.success is False
        assert result.reason == FailureReason.SPAWN_ERROR
        assert "no shell" in result.stderr
