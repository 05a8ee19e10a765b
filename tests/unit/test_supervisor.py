"""
Unit tests for worker pool PID handling.
"""

import os
import signal
import subprocess

import psutil
import pytest

from queuectl.exceptions import WorkerPoolRunningError
from queuectl.worker.supervisor import live_pids, read_pids, start_workers, stop_workers


def record(pid: int, started: float | None = None) -> str:
    if started is None:
        started = psutil.Process(pid).create_time()
    return f"{pid} {started!r}\n"


@pytest.fixture
def sleeper():
    process = subprocess.Popen(["sleep", "30"])
    yield process
    if process.poll() is None:
        process.kill()
        process.wait()


class TestSupervisor:
    """Tests for the pid file records and stop_workers."""

    def test_read_pids_missing_file(self, tmp_path):
        assert read_pids(str(tmp_path / "missing.pid")) == []

    def test_read_pids_skips_garbage(self, tmp_path):
        pid_file = tmp_path / "workers.pid"
        pid_file.write_text("100 1700000000.25\n\nnot-a-pid 1.0\n300\n200 1700000001.5\n400 soon\n")

        assert read_pids(str(pid_file)) == [(100, 1700000000.25), (200, 1700000001.5)]

    def test_stop_workers_signals_live_processes(self, tmp_path, sleeper):
        """Test every recorded process gets SIGTERM."""
        pid_file = tmp_path / "workers.pid"
        pid_file.write_text(record(sleeper.pid))

        assert stop_workers(str(pid_file)) == 1
        assert sleeper.wait(timeout=5) == -signal.SIGTERM

    def test_stop_workers_skips_reused_pid(self, tmp_path, sleeper):
        """Test a PID now owned by another process is left alone."""
        pid_file = tmp_path / "workers.pid"
        started = psutil.Process(sleeper.pid).create_time()
        pid_file.write_text(record(sleeper.pid, started - 3600))

        assert live_pids(str(pid_file)) == []
        assert stop_workers(str(pid_file)) == 0
        assert sleeper.poll() is None
        assert not pid_file.exists()

    def test_stop_workers_skips_dead_processes(self, tmp_path):
        process = subprocess.Popen(["true"])
        process.wait()
        pid_file = tmp_path / "workers.pid"
        pid_file.write_text(record(process.pid, 1700000000.0))

        assert stop_workers(str(pid_file)) == 0
        assert not pid_file.exists()

    def test_start_refuses_running_pool(self, tmp_path):
        """Test a live pool's pid file is neither overwritten nor joined."""
        pid_file = tmp_path / "workers.pid"
        contents = record(os.getpid())
        pid_file.write_text(contents)

        with pytest.raises(WorkerPoolRunningError) as exc_info:
            start_workers(1, pid_file=str(pid_file))

        assert exc_info.value.pids == [os.getpid()]
        assert pid_file.read_text() == contents

    def test_start_rejects_empty_pool(self, tmp_path):
        with pytest.raises(ValueError):
            start_workers(0, pid_file=str(tmp_path / "workers.pid"))
