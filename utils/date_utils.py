from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import List, Union

from dto.pipeline_dto import SnapshotFrequency

DateLike = Union[date, datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_date(value: DateLike) -> date:
    """Calendar date at midnight UTC; aware datetimes are converted first."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def utc_midnight(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def years_before(d: date, years: int) -> date:
    try:
        return d.replace(year=d.year - years)
    except ValueError:
        # Feb 29 -> Feb 28
        return d.replace(year=d.year - years, day=28)


def full_months_between(start: date, end: date) -> int:
    """Whole calendar months from start to end (0 when end precedes start)."""
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(months, 0)


# =============== Boundaries ===============
def monday_on_or_after(d: date) -> date:
    return d + timedelta(days=(7 - d.weekday()) % 7)


def next_monday(d: date) -> date:
    """Monday strictly after d (a Monday rolls a full week)."""
    return d + timedelta(days=7 - d.weekday())


def first_of_month(d: date) -> date:
    return d.replace(day=1)


def first_of_next_month(d: date) -> date:
    if d.month == 12:
        return date(d.year + 1, 1, 1)
    return date(d.year, d.month + 1, 1)


def first_of_quarter(d: date) -> date:
    return date(d.year, 3 * ((d.month - 1) // 3) + 1, 1)


def first_of_next_quarter(d: date) -> date:
    start = first_of_quarter(d)
    if start.month == 10:
        return date(d.year + 1, 1, 1)
    return date(d.year, start.month + 3, 1)


# =============== Sequences ===============
def weekly_dates(start: date, end: date) -> List[date]:
    out: List[date] = []
    cur = monday_on_or_after(start)
    while cur <= end:
        out.append(cur)
        cur += timedelta(days=7)
    return out


def monthly_dates(start: date, end: date) -> List[date]:
    out: List[date] = []
    cur = first_of_month(start)
    while cur <= end:
        out.append(cur)
        cur = first_of_next_month(cur)
    return out


def quarterly_dates(start: date, end: date) -> List[date]:
    out: List[date] = []
    cur = first_of_quarter(start)
    while cur <= end:
        out.append(cur)
        cur = first_of_next_quarter(cur)
    return out


def date_sequence(start: DateLike, end: DateLike, frequency: SnapshotFrequency) -> List[date]:
    """Ascending snapshot dates between start and end (inclusive) for the cadence."""
    start_d, end_d = to_utc_date(start), to_utc_date(end)
    if start_d > end_d:
        return []
    if frequency == SnapshotFrequency.WEEKLY:
        return weekly_dates(start_d, end_d)
    if frequency == SnapshotFrequency.QUARTERLY:
        return quarterly_dates(start_d, end_d)
    return monthly_dates(start_d, end_d)


def next_boundary(now: datetime, frequency: SnapshotFrequency) -> datetime:
    """Next calendar boundary for periodic runs, at 00:00 UTC."""
    today = to_utc_date(now)
    if frequency == SnapshotFrequency.WEEKLY:
        return utc_midnight(next_monday(today))
    if frequency == SnapshotFrequency.QUARTERLY:
        return utc_midnight(first_of_next_quarter(today))
    return utc_midnight(first_of_next_month(today))
