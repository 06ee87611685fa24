"""Business-calendar utilities.

Every aggregation keys rows by a calendar day in the business time zone
(settings.BUSINESS_TIMEZONE), never by the UTC date of an instant.

Day boundaries are half-open: a business day D covers the instants
[00:00 D local, 00:00 D+1 local). Range queries over days are inclusive on
both day keys.
"""

import calendar
from collections.abc import Iterator
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from config.settings import settings


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def business_tz() -> ZoneInfo:
    return ZoneInfo(settings.BUSINESS_TIMEZONE)


def to_business_day(instant: datetime) -> date:
    """Calendar day of an instant in the business zone. Naive input is treated as UTC."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(business_tz()).date()


def business_today() -> date:
    return to_business_day(utc_now())


def day_bounds_utc(day: date) -> tuple[datetime, datetime]:
    """Return (start_inclusive, end_exclusive) of a business day as UTC instants."""
    tz = business_tz()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def month_key(day: date) -> str:
    """2025-03-14 -> '2025-03'."""
    return f"{day.year:04d}-{day.month:02d}"


def parse_month(month: str) -> tuple[int, int]:
    """'2025-03' -> (2025, 3). Raises ValueError on malformed input."""
    year_str, _, month_str = month.partition("-")
    year, mon = int(year_str), int(month_str)
    if not (1 <= mon <= 12) or len(month) != 7:
        raise ValueError(f"Month must be YYYY-MM, got {month!r}")
    return year, mon


def month_bounds(month: str) -> tuple[date, date]:
    """First and last calendar day of a 'YYYY-MM' month."""
    year, mon = parse_month(month)
    last = calendar.monthrange(year, mon)[1]
    return date(year, mon, 1), date(year, mon, last)


def previous_month(month: str) -> str:
    year, mon = parse_month(month)
    if mon == 1:
        return f"{year - 1:04d}-12"
    return f"{year:04d}-{mon - 1:02d}"


def next_month(month: str) -> str:
    year, mon = parse_month(month)
    if mon == 12:
        return f"{year + 1:04d}-01"
    return f"{year:04d}-{mon + 1:02d}"


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every day in [start, end], inclusive. Empty when start > end."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def days_between(start: date, end: date) -> int:
    """Inclusive day count of [start, end]."""
    return (end - start).days + 1
