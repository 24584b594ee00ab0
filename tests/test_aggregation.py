from __future__ import annotations

from datetime import date

import pytest

from winterdienst.aggregation import aggregate_work_logs, entry_minutes
from winterdienst.schemas import WorkLogEntry


def make_entry(entry_id, work_date, start, end, is_bg=False, notes=None):
    return WorkLogEntry(
        id=entry_id,
        user_id=1,
        user_name="Bernd Berg",
        street_id=None if is_bg is None else 10,
        street_name=None if is_bg is None else "Hauptstraße",
        work_date=work_date,
        start_time=start,
        end_time=end,
        notes=notes,
        is_bg=is_bg,
    )


def test_two_logs_on_same_day_form_one_group():
    entries = [
        make_entry(1, date(2026, 1, 5), "08:00", "10:30"),
        make_entry(2, date(2026, 1, 5), "11:00", "12:00"),
    ]
    result = aggregate_work_logs(entries)
    assert len(result.groups) == 1
    assert result.groups[0].total_minutes == 210
    assert result.groups[0].label == "Montag, 05.01.2026"
    assert result.total_minutes == 210
    assert result.total_hours == 3.5
    assert result.entry_count == 2
    assert result.distinct_days == 1


def test_groups_are_sorted_oldest_first_and_entries_by_start():
    entries = [
        make_entry(1, date(2026, 1, 7), "09:00", "10:00"),
        make_entry(2, date(2026, 1, 5), "14:00", "15:00"),
        make_entry(3, date(2026, 1, 5), "07:00", "08:00"),
    ]
    result = aggregate_work_logs(entries)
    assert [group.date for group in result.groups] == [date(2026, 1, 5), date(2026, 1, 7)]
    assert [entry.id for entry in result.groups[0].entries] == [3, 2]


def test_entries_with_same_start_keep_input_order():
    entries = [
        make_entry(5, date(2026, 1, 5), "08:00", "09:00"),
        make_entry(2, date(2026, 1, 5), "08:00", "08:30"),
        make_entry(9, date(2026, 1, 5), "08:00", "10:00"),
    ]
    result = aggregate_work_logs(entries)
    assert [entry.id for entry in result.groups[0].entries] == [5, 2, 9]


def test_aggregation_is_idempotent_and_totals_add_up():
    entries = [
        make_entry(1, date(2026, 1, 5), "23:55", "00:25"),
        make_entry(2, date(2026, 1, 6), "06:00", "07:15"),
        make_entry(3, date(2026, 1, 6), "12:00", None),
    ]
    first = aggregate_work_logs(entries)
    second = aggregate_work_logs(entries)
    assert first == second
    assert first.total_minutes == sum(group.total_minutes for group in first.groups)
    assert first.total_minutes == sum(entry_minutes(entry) for entry in entries)
    assert first.total_minutes == 30 + 75


def test_category_filter_only_applies_when_enabled():
    entries = [
        make_entry(1, date(2026, 1, 5), "08:00", "09:00", is_bg=True),
        make_entry(2, date(2026, 1, 5), "09:00", "10:00", is_bg=False),
        make_entry(3, date(2026, 1, 5), "10:00", "11:00", is_bg=None),
    ]
    disabled = aggregate_work_logs(entries, "bg", enable_category_filter=False)
    assert disabled.entry_count == 3

    bg_only = aggregate_work_logs(entries, "bg", enable_category_filter=True)
    assert [entry.id for entry in bg_only.groups[0].entries] == [1]
    assert bg_only.unfiltered_count == 3

    private = aggregate_work_logs(entries, "private", enable_category_filter=True)
    assert [entry.id for entry in private.groups[0].entries] == [2]

    everything = aggregate_work_logs(entries, "all", enable_category_filter=True)
    assert everything.entry_count == 3


def test_unknown_category_is_rejected_when_filter_enabled():
    with pytest.raises(ValueError):
        aggregate_work_logs([], "winter", enable_category_filter=True)


def test_empty_input_gives_empty_result():
    result = aggregate_work_logs([])
    assert result.groups == []
    assert result.total_minutes == 0
    assert result.distinct_days == 0
