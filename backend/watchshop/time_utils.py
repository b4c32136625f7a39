from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


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


def parse_business_date(value: str | date | None) -> date:
    """
    Parse a calendar date ("YYYY-MM-DD").

    Raises ValueError for missing or malformed input, including strings
    that carry a time component.
    """
    if isinstance(value, datetime):
        raise ValueError("business date must not carry a time component")
    if isinstance(value, date):
        return value
    if value is None or not str(value).strip():
        raise ValueError("date is required")
    return date.fromisoformat(str(value).strip())


def resolve_timezone(tz: str | tzinfo) -> tzinfo:
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


def business_day_window(day: date, tz: str | tzinfo) -> tuple[datetime, datetime]:
    """
    Local day [day 00:00, day+1 00:00) expressed as UTC-naive bounds.

    The end bound is exclusive.
    """
    zone = resolve_timezone(tz)
    start_local = datetime.combine(day, time.min, tzinfo=zone)
    end_local = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )


def business_date_of(dt: datetime, tz: str | tzinfo) -> date:
    """Local calendar day of a UTC-naive timestamp."""
    zone = resolve_timezone(tz)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(zone).date()


def business_today(tz: str | tzinfo, *, now: Optional[datetime] = None) -> date:
    """Today's business date according to the server clock."""
    return business_date_of(now or utcnow(), tz)
