from __future__ import annotations

from datetime import date, timedelta

import pytest

from winterdienst.periods import iso_week_number, resolve_period, shift_reference


def test_day_period_is_single_day():
    period = resolve_period(date(2026, 1, 5), "day")
    assert period.start == period.end == date(2026, 1, 5)
    assert period.label == "Montag, 05. Januar 2026"


@pytest.mark.parametrize("offset", range(7))
def test_week_always_starts_on_monday_and_spans_seven_days(offset):
    reference = date(2026, 1, 5) + timedelta(days=offset)
    period = resolve_period(reference, "week")
    assert period.start == date(2026, 1, 5)
    assert period.start.weekday() == 0
    assert period.end - period.start == timedelta(days=6)


def test_sunday_belongs_to_previous_monday():
    period = resolve_period(date(2026, 1, 11), "week")
    assert period.start == date(2026, 1, 5)
    assert period.end == date(2026, 1, 11)


def test_week_label_contains_iso_week():
    period = resolve_period(date(2026, 1, 7), "week")
    assert period.label == "05.01. - 11.01.2026 (KW 2)"


def test_iso_week_at_year_boundary():
    assert iso_week_number(date(2027, 1, 1)) == 53
    assert iso_week_number(date(2025, 12, 29)) == 1
    period = resolve_period(date(2027, 1, 1), "week")
    assert period.start == date(2026, 12, 28)
    assert period.end == date(2027, 1, 3)


def test_month_period_covers_calendar_month():
    period = resolve_period(date(2028, 2, 10), "month")
    assert period.start == date(2028, 2, 1)
    assert period.end == date(2028, 2, 29)
    assert period.label == "Februar 2028"


def test_unknown_granularity_is_rejected():
    with pytest.raises(ValueError):
        resolve_period(date(2026, 1, 1), "year")


def test_shift_reference():
    assert shift_reference(date(2026, 1, 5), "day", -1) == date(2026, 1, 4)
    assert shift_reference(date(2026, 1, 5), "week", 1) == date(2026, 1, 12)
    assert shift_reference(date(2026, 1, 31), "month", 1) == date(2026, 2, 28)
    assert shift_reference(date(2026, 1, 15), "month", -1) == date(2025, 12, 15)
