"""
Small time helpers shared by the store, worker and CLI.
"""

import re
from datetime import datetime, timezone

# e.g. "20", "20s", "5m", "1h30m", "2d3h"
DELAY_RE = re.compile(
    r"(?i)^\s*(?:(\d+)\s*d)?\s*(?:(\d+)\s*h)?\s*(?:(\d+)\s*m)?\s*(?:(\d+)\s*s?)?\s*$"
)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every datetime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_delay(value: str) -> int:
    """
    Parse a delay like '20', '20s', '5m', '1h30m' or '2d3h' into seconds.

    A bare number is seconds. Raises ValueError on anything else.
    """
    if value is None or not value.strip():
        raise ValueError("delay is empty")
    match = DELAY_RE.match(value)
    if not match or not any(match.groups()):
        raise ValueError(f"Invalid delay format: {value!r}")
    days, hours, minutes, seconds = (int(g) if g else 0 for g in match.groups())
    return days * 86400 + hours * 3600 + minutes * 60 + seconds
