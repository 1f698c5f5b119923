"""
Time utility functions for window and day-distance calculations.

All engine timestamps are timezone-aware UTC datetimes; naive values are
assumed to already be UTC.

Time Complexity: O(1) per call, O(n) for series helpers
Memory: O(n) for series copies
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, List

import pandas as pd

SECONDS_PER_DAY = 86400.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value) -> datetime:
    """Coerce a datetime, pandas Timestamp or ISO string to an aware UTC datetime."""
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    else:
        ts = ts.tz_convert("UTC")
    return ts.to_pydatetime()


def window_start(now: datetime, days: int) -> datetime:
    """Cutoff timestamp for a trailing window of `days` days ending at `now`."""
    return ensure_utc(now) - timedelta(days=days)


def days_between(a: datetime, b: datetime) -> float:
    """Absolute distance between two timestamps in fractional days."""
    return abs((ensure_utc(a) - ensure_utc(b)).total_seconds()) / SECONDS_PER_DAY


def signed_days(later: datetime, earlier: datetime) -> float:
    """`later - earlier` in fractional days (negative when `later` precedes)."""
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / SECONDS_PER_DAY


def epoch_day(ts: datetime) -> int:
    """Whole days since the Unix epoch."""
    return int(ensure_utc(ts).timestamp() // SECONDS_PER_DAY)


def epoch_days_float(timestamps: Iterable[datetime]) -> List[float]:
    """Fractional days since the Unix epoch for a sequence of timestamps."""
    series = pd.to_datetime(pd.Series(list(timestamps)), utc=True)
    if series.empty:
        return []
    seconds = series.map(pd.Timestamp.timestamp)
    return (seconds / SECONDS_PER_DAY).tolist()
