"""
Time helpers.

All timestamps are stored as naive UTC, matching the DateTime columns.
"""
from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current time as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def whole_days_between(start: datetime, end: datetime) -> int:
    """Number of full 24h periods from start to end (never negative)"""
    if end <= start:
        return 0
    return (end - start) // timedelta(days=1)
