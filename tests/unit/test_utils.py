"""
Unit tests for helpers and settings.
"""

import pytest

from queuectl.config import Settings
from queuectl.utils import parse_delay, utcnow


class TestParseDelay:
    """Tests for parse_delay."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("0", 0),
            ("20", 20),
            ("20s", 20),
            ("5m", 300),
            ("1h30m", 5400),
            ("2d3h", 183600),
            ("1H 5M", 3900),
        ],
    )
    def test_valid(self, value: str, expected: int):
        assert parse_delay(value) == expected

    @pytest.mark.parametrize("value", ["", "  ", "abc", "-5", "1.5", "5x", "m"])
    def test_invalid(self, value: str):
        with pytest.raises(ValueError):
            parse_delay(value)


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None


class TestSettings:
    """Tests for Settings validation."""

    def test_stale_lock_must_exceed_timeout(self):
        """Test a stale threshold inside the execution timeout is refused."""
        with pytest.raises(ValueError):
            Settings(worker_job_timeout_seconds=30, worker_stale_lock_seconds=30)

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.worker_stale_lock_seconds > settings.worker_job_timeout_seconds
        assert settings.database_url.startswith("sqlite+aiosqlite")
