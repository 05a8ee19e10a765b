"""
Unit tests for the command line interface.
"""

import pytest
from click.testing import CliRunner

from queuectl.cli import cli


class TestCLI:
    """Tests for the queuectl commands against a temporary store."""

    @pytest.fixture
    def invoke(self, database_url: str):
        runner = CliRunner()

        def _invoke(*args: str):
            return runner.invoke(cli, ["--database-url", database_url, *args])

        return _invoke

    def test_enqueue(self, invoke):
        result = invoke("enqueue", "--id", "job-1", "--command", "echo hi", "--priority", "3")

        assert result.exit_code == 0, result.output
        assert "Job enqueued: job-1" in result.output
        assert "priority: 3" in result.output

        listed = invoke("list")
        assert "job-1" in listed.output
        assert "pending" in listed.output

    def test_enqueue_with_delay(self, invoke):
        result = invoke("enqueue", "--id", "later", "--command", "echo hi", "--delay", "1m")

        assert result.exit_code == 0, result.output
        assert "Will run after 60 seconds" in result.output

    def test_enqueue_bad_delay(self, invoke):
        result = invoke("enqueue", "--id", "later", "--command", "echo hi", "--delay", "soon")

        assert result.exit_code == 2
        assert "Invalid delay" in result.output

    def test_enqueue_duplicate(self, invoke):
        invoke("enqueue", "--id", "job-1", "--command", "echo hi")

        result = invoke("enqueue", "--id", "job-1", "--command", "echo again")

        assert result.exit_code == 0
        assert 'A job with ID "job-1" already exists' in result.output

    def test_status_and_stats(self, invoke):
        invoke("enqueue", "--id", "job-1", "--command", "echo hi")

        status = invoke("status")
        assert status.exit_code == 0
        assert "pending" in status.output
        assert "dead" in status.output

        stats = invoke("stats")
        assert stats.exit_code == 0
        assert "pending: 1" in stats.output
        assert "N/A" in stats.output

    def test_list_empty(self, invoke):
        result = invoke("list", "--state", "dead")

        assert result.exit_code == 0
        assert "No jobs found with state: dead" in result.output

    def test_log(self, invoke):
        invoke("enqueue", "--id", "job-1", "--command", "echo hi")

        result = invoke("log", "job-1")
        assert result.exit_code == 0
        assert "Logs for Job: job-1" in result.output
        assert "(empty)" in result.output

        missing = invoke("log", "nope")
        assert missing.exit_code == 0
        assert "No job found with ID: nope" in missing.output

    def test_dlq(self, invoke):
        assert "DLQ is empty" in invoke("dlq", "list").output

        invoke("enqueue", "--id", "job-1", "--command", "echo hi")
        result = invoke("dlq", "retry", "job-1")

        assert result.exit_code == 0
        assert "No dead job found with ID: job-1" in result.output

    def test_config(self, invoke):
        result = invoke("config", "set", "max_retries", "5")
        assert result.exit_code == 0
        assert "Config updated: max_retries = 5" in result.output

        listed = invoke("config", "list", "--json")
        assert '"max_retries": "5"' in listed.output

        invoke("enqueue", "--id", "job-1", "--command", "echo hi")
        assert "0/5" in invoke("list").output

    def test_config_unknown_key(self, invoke):
        result = invoke("config", "set", "colour", "blue")

        assert result.exit_code == 0
        assert 'Config key "colour" not found' in result.output

    def test_config_invalid_value(self, invoke):
        result = invoke("config", "set", "backoff_base", "fast")

        assert result.exit_code == 0
        assert "Invalid value" in result.output

    def test_store_unavailable(self, tmp_path):
        """Test an unopenable store is reported without a traceback."""
        url = f"sqlite+aiosqlite:///{tmp_path / 'missing-dir' / 'queue.db'}"

        result = CliRunner().invoke(cli, ["--database-url", url, "status"])

        assert result.exit_code == 1
        assert "Job store unavailable" in result.output
        assert "Traceback" not in result.output

    def test_worker_stop_without_workers(self, invoke, tmp_path, monkeypatch):
        monkeypatch.setenv("QUEUECTL_WORKER_PID_FILE", str(tmp_path / "none.pid"))
        from queuectl.config import get_settings
        get_settings.cache_clear()

        try:
            result = invoke("worker", "stop")
        finally:
            get_settings.cache_clear()

        assert result.exit_code == 0
        assert "No running workers found" in result.output
