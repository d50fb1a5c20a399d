import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from datetime import date, datetime, timezone

from dto.pipeline_dto import SnapshotFrequency
from utils.date_utils import (
    date_sequence,
    first_of_next_quarter,
    full_months_between,
    next_boundary,
    next_monday,
    to_utc_date,
    years_before,
)


def test_monthly_sequence_is_inclusive():
    dates = date_sequence(date(2024, 1, 15), date(2024, 4, 1), SnapshotFrequency.MONTHLY)
    assert dates == [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1)]


def test_weekly_sequence_starts_on_monday():
    # 2024-01-03 is a Wednesday
    dates = date_sequence(date(2024, 1, 3), date(2024, 1, 29), SnapshotFrequency.WEEKLY)
    assert dates == [date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22), date(2024, 1, 29)]
    assert all(d.weekday() == 0 for d in dates)


def test_quarterly_sequence_crosses_year():
    dates = date_sequence(date(2023, 11, 20), date(2024, 7, 1), SnapshotFrequency.QUARTERLY)
    assert dates == [date(2023, 10, 1), date(2024, 1, 1), date(2024, 4, 1), date(2024, 7, 1)]


def test_empty_sequence_when_start_after_end():
    assert date_sequence(date(2024, 5, 1), date(2024, 4, 1), SnapshotFrequency.MONTHLY) == []


def test_next_monday_rolls_a_full_week_on_monday():
    assert next_monday(date(2024, 1, 8)) == date(2024, 1, 15)
    assert next_monday(date(2024, 1, 10)) == date(2024, 1, 15)


def test_next_boundary_is_utc_midnight():
    now = datetime(2024, 12, 14, 17, 30, tzinfo=timezone.utc)

    assert next_boundary(now, SnapshotFrequency.MONTHLY) == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert next_boundary(now, SnapshotFrequency.QUARTERLY) == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert next_boundary(now, SnapshotFrequency.WEEKLY) == datetime(2024, 12, 16, tzinfo=timezone.utc)


def test_first_of_next_quarter():
    assert first_of_next_quarter(date(2024, 2, 29)) == date(2024, 4, 1)
    assert first_of_next_quarter(date(2024, 10, 1)) == date(2025, 1, 1)


def test_years_before_leap_day():
    assert years_before(date(2024, 2, 29), 2) == date(2022, 2, 28)
    assert years_before(date(2024, 6, 1), 2) == date(2022, 6, 1)


def test_full_months_between():
    assert full_months_between(date(2024, 1, 31), date(2024, 2, 29)) == 0
    assert full_months_between(date(2024, 1, 15), date(2025, 1, 15)) == 12
    assert full_months_between(date(2025, 1, 1), date(2024, 1, 1)) == 0


def test_to_utc_date_converts_aware_datetimes():
    from datetime import timedelta

    late = datetime(2024, 3, 1, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    assert to_utc_date(late) == date(2024, 3, 2)
    assert to_utc_date(date(2024, 3, 1)) == date(2024, 3, 1)
