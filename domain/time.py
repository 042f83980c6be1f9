"""
Clock helpers shared by the domain model.

UTC checks for stored instants, and conversion to the business day that
scopes sale codes and travel-date rules.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

# Civil timezone of the operation. Day-scoped codes and "today" follow it.
DEFAULT_BUSINESS_TIMEZONE = "America/Lima"


def require_utc_timestamp(name: str, value: datetime) -> None:
    """Reject naive datetimes and any offset other than zero."""

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def business_now(now_utc: datetime, tz_name: str = DEFAULT_BUSINESS_TIMEZONE) -> datetime:
    """Convert an explicit UTC instant to the business timezone."""

    require_utc_timestamp("now_utc", now_utc)
    return now_utc.astimezone(ZoneInfo(tz_name))


def business_date(now_utc: datetime, tz_name: str = DEFAULT_BUSINESS_TIMEZONE) -> date:
    return business_now(now_utc, tz_name).date()


def date_key(value: date) -> str:
    """YYYYMMDD key used by day-scoped sequence counters."""

    return value.strftime("%Y%m%d")


def business_date_key(now_utc: datetime, tz_name: str = DEFAULT_BUSINESS_TIMEZONE) -> str:
    """
    Day-scope key for an instant.

    Example:
        >>> business_date_key(datetime(2026, 1, 16, 3, 0, tzinfo=timezone.utc))
        '20260115'
    """

    return date_key(business_date(now_utc, tz_name))


def to_iso_utc(dt: datetime, *, name: str) -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def parse_utc_datetime(value: object) -> datetime:
    """
    Read a timestamp column as an aware UTC datetime.

    PostgREST sends ISO-8601 text; a trailing Z is accepted. Naive values are
    taken as UTC.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


__all__ = [
    "DEFAULT_BUSINESS_TIMEZONE",
    "require_utc_timestamp",
    "business_now",
    "business_date",
    "date_key",
    "business_date_key",
    "to_iso_utc",
    "parse_utc_datetime",
]
