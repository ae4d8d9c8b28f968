from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


PERIODS = ("day", "week", "month", "year")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" -> midnight of that day
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def coerce_datetime(value) -> Optional[datetime]:
    """
    Accept None, a date, a datetime (aware or naive) or an ISO string and
    return a UTC-naive datetime. Raises ValueError on anything else.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        return parse_iso_datetime(value)
    raise ValueError(f"invalid datetime value: {value!r}")


def start_of_day(dt: datetime) -> datetime:
    return datetime.combine(dt.date(), time.min)


def end_of_day(dt: datetime) -> datetime:
    """Last representable instant of dt's calendar day (inclusive upper bound)."""
    return datetime.combine(dt.date(), time.max)


def period_key(dt: datetime, period: str) -> str:
    """
    Bucket key for time-series reports.

    week buckets are keyed by the Sunday that starts the week.
    """
    if period == "day":
        return dt.strftime("%Y-%m-%d")
    if period == "week":
        # weekday(): Monday=0 .. Sunday=6
        days_since_sunday = (dt.weekday() + 1) % 7
        return (dt.date() - timedelta(days=days_since_sunday)).isoformat()
    if period == "month":
        return dt.strftime("%Y-%m")
    if period == "year":
        return dt.strftime("%Y")
    raise ValueError(f"unknown period: {period}")


def default_period_start(period: str, now: Optional[datetime] = None) -> datetime:
    """Default look-back window for a series: 30 days, 12 weeks, 12 months or 5 years."""
    now = now or utcnow()
    if period == "day":
        return now - timedelta(days=30)
    if period == "week":
        return now - timedelta(weeks=12)
    if period == "month":
        day = min(now.day, 28)
        return now.replace(year=now.year - 1, day=day)
    if period == "year":
        day = min(now.day, 28)
        return now.replace(year=now.year - 5, day=day)
    raise ValueError(f"unknown period: {period}")


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
