from __future__ import annotations

from datetime import time

import pytest

from winterdienst.durations import (
    duration_minutes,
    format_clock,
    format_hours,
    format_minutes,
    parse_clock,
)


def test_parse_clock_accepts_strings_and_time_objects():
    assert parse_clock("08:30") == 510
    assert parse_clock("08:30:45") == 510
    assert parse_clock(time(23, 59)) == 1439


@pytest.mark.parametrize(
    ("start", "end", "expected"),
    [
        ("08:00", "10:30", 150),
        ("00:00", "23:59", 1439),
        ("12:15", "12:15", 0),
        ("06:00:00", "07:45:00", 105),
    ],
)
def test_duration_is_plain_difference_when_end_after_start(start, end, expected):
    assert duration_minutes(start, end) == expected


def test_duration_crossing_midnight_adds_a_day():
    assert duration_minutes("23:55", "00:25") == 30
    assert duration_minutes(time(22, 0), time(2, 0)) == 240


def test_duration_is_never_negative():
    for start_hour in range(24):
        for end_hour in range(24):
            value = duration_minutes(time(start_hour, 10), time(end_hour, 5))
            assert 0 <= value < 1440


def test_format_helpers():
    assert format_minutes(210) == "3h 30min"
    assert format_minutes(0) == "0h 0min"
    assert format_clock(time(8, 5)) == "08:05"
    assert format_clock("7:05:59") == "07:05"
    assert format_clock(None) == ""
    assert format_hours(3.5) == "3h 30min"
    assert format_hours(1.9999) == "2h 0min"
