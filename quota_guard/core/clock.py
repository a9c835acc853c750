"""
Time source abstraction.

All day and refill arithmetic goes through a Clock so tests can drive time.
"""

import time
from datetime import date, datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Anything that reports the current time as epoch seconds."""

    def time(self) -> float:
        ...


class SystemClock:
    """Wall clock backed by time.time()."""

    def time(self) -> float:
        return time.time()


def utc_date(timestamp: float) -> date:
    """Calendar date (UTC) for an epoch timestamp."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).date()


def seconds_until_utc_midnight(timestamp: float) -> float:
    """Seconds from timestamp until the next UTC midnight."""
    now = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time(), tzinfo=timezone.utc)
    return (midnight - now).total_seconds()
