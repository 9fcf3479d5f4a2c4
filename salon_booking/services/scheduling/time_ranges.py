# salon_booking/services/scheduling/time_ranges.py
"""
Minute-of-day range arithmetic and salon-local time conversion.

A range is a half-open (start_minute, end_minute) tuple measured from local
midnight of a given day. Lists of ranges are kept sorted and disjoint.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Tuple
from zoneinfo import ZoneInfo

MINUTES_PER_DAY = 24 * 60

TimeRange = Tuple[int, int]


def merge_ranges(ranges: Iterable[TimeRange]) -> List[TimeRange]:
    """Sort ranges and merge overlapping or touching ones."""
    merged: List[TimeRange] = []
    for start, end in sorted(r for r in ranges if r[1] > r[0]):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def subtract_ranges(available: Iterable[TimeRange], unavailable: Iterable[TimeRange]) -> List[TimeRange]:
    """
    Remove every unavailable range from the available ones.

    Example:
        available:   [(540, 1020)]
        unavailable: [(600, 660), (840, 900)]
        result:      [(540, 600), (660, 840), (900, 1020)]
    """
    result = merge_ranges(available)
    for blocked_start, blocked_end in merge_ranges(unavailable):
        remaining: List[TimeRange] = []
        for start, end in result:
            if blocked_end <= start or blocked_start >= end:
                remaining.append((start, end))
                continue
            if start < blocked_start:
                remaining.append((start, blocked_start))
            if end > blocked_end:
                remaining.append((blocked_end, end))
        result = remaining
    return result


def intersect_ranges(ranges_a: Iterable[TimeRange], ranges_b: Iterable[TimeRange]) -> List[TimeRange]:
    result: List[TimeRange] = []
    for a_start, a_end in merge_ranges(ranges_a):
        for b_start, b_end in merge_ranges(ranges_b):
            start, end = max(a_start, b_start), min(a_end, b_end)
            if start < end:
                result.append((start, end))
    return merge_ranges(result)


def contains_range(ranges: Iterable[TimeRange], start: int, end: int) -> bool:
    """True when [start, end) fits entirely inside one of the ranges."""
    return any(r_start <= start and end <= r_end for r_start, r_end in ranges)


def salon_zone(tz_name: str) -> ZoneInfo:
    return ZoneInfo(tz_name)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_datetime(day: date, minute: int, tz: ZoneInfo) -> datetime:
    """UTC instant of `minute` minutes past local midnight on `day` (wall-clock)."""
    local = datetime.combine(day, time(0), tzinfo=tz) + timedelta(minutes=minute)
    # Normalize through UTC so wall-clock arithmetic resolves DST gaps
    return local.astimezone(timezone.utc)


def day_window(day: date, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    return local_datetime(day, 0, tz), local_datetime(day + timedelta(days=1), 0, tz)


def minute_of_day(value: datetime, day: date, tz: ZoneInfo) -> int:
    """Minutes between local midnight of `day` and `value`; may fall outside 0..1440."""
    local = ensure_utc(value).astimezone(tz)
    return (local.date() - day).days * MINUTES_PER_DAY + local.hour * 60 + local.minute


def local_date(value: datetime, tz: ZoneInfo) -> date:
    return ensure_utc(value).astimezone(tz).date()


def format_minute(minute: int) -> str:
    return f"{minute // 60:02d}:{minute % 60:02d}"


def daterange(date_from: date, date_to: date):
    current = date_from
    while current <= date_to:
        yield current
        current += timedelta(days=1)
