"""
DateTime helpers. Every timestamp the service stores or returns is IST (UTC+05:30).
"""
from datetime import date, datetime, time, timezone, timedelta
from typing import Optional, Tuple

# IST timezone (UTC+5:30)
IST = timezone(timedelta(hours=5, minutes=30))


def now_ist() -> datetime:
    """Current IST datetime (timezone-aware)."""
    return datetime.now(IST)


def to_ist(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is in IST timezone.

    Naive values (SQLite drops tzinfo on the way back) are assumed to be IST
    already; aware values in another zone are converted.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=IST)
    if dt.tzinfo == IST:
        return dt
    return dt.astimezone(IST)


def to_ist_isoformat(dt: Optional[datetime]) -> Optional[str]:
    """ISO string in IST, e.g. "2024-12-17T14:30:00+05:30", or None."""
    ist_dt = to_ist(dt)
    if ist_dt is None:
        return None
    return ist_dt.isoformat()


def seconds_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    """Whole seconds from start to end, floored at zero. None if either side is missing."""
    if start is None or end is None:
        return None
    delta = (to_ist(end) - to_ist(start)).total_seconds()
    return max(0, int(delta))


def ist_day_bounds(start_day: Optional[date], end_day: Optional[date]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Turn an inclusive calendar-day range into [start, end) IST datetimes.
    The end bound is midnight after end_day so the whole day matches.
    """
    lower = datetime.combine(start_day, time.min, tzinfo=IST) if start_day else None
    upper = datetime.combine(end_day, time.min, tzinfo=IST) + timedelta(days=1) if end_day else None
    return lower, upper
