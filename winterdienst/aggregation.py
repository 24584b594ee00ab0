"""Grouping and summing of work logs per calendar day."""

from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional

from .durations import duration_minutes, parse_clock
from .periods import format_day_label
from .schemas import DayGroup, WorkLogAggregation, WorkLogEntry

CATEGORY_ALL = "all"
CATEGORY_BG = "bg"
CATEGORY_PRIVATE = "private"
CATEGORIES = (CATEGORY_ALL, CATEGORY_BG, CATEGORY_PRIVATE)


def entry_minutes(entry: WorkLogEntry) -> int:
    if entry.end_time is None:
        return 0
    return duration_minutes(entry.start_time, entry.end_time)


def filter_by_category(
    entries: Iterable[WorkLogEntry],
    category: Optional[str],
    *,
    enabled: bool,
) -> List[WorkLogEntry]:
    items = list(entries)
    if not enabled or not category or category == CATEGORY_ALL:
        return items
    if category == CATEGORY_BG:
        return [entry for entry in items if entry.is_bg is True]
    if category == CATEGORY_PRIVATE:
        return [entry for entry in items if entry.is_bg is False]
    raise ValueError(f"Unbekannter Filter: {category}")


def aggregate_work_logs(
    entries: Iterable[WorkLogEntry],
    category: Optional[str] = None,
    *,
    enable_category_filter: bool = False,
) -> WorkLogAggregation:
    """Group ``entries`` by work date.

    Groups come out oldest first, entries inside a group by start time. The
    sort is stable, so entries with the same start keep their input order.
    """
    items = list(entries)
    filtered = filter_by_category(items, category, enabled=enable_category_filter)
    ordered = sorted(filtered, key=lambda entry: (entry.work_date, parse_clock(entry.start_time)))

    buckets: Dict[date, List[WorkLogEntry]] = {}
    for entry in ordered:
        buckets.setdefault(entry.work_date, []).append(entry)

    groups: List[DayGroup] = []
    for work_date in sorted(buckets):
        day_entries = buckets[work_date]
        groups.append(
            DayGroup(
                date=work_date,
                label=format_day_label(work_date),
                entries=day_entries,
                total_minutes=sum(entry_minutes(entry) for entry in day_entries),
            )
        )

    return WorkLogAggregation(
        groups=groups,
        total_minutes=sum(group.total_minutes for group in groups),
        entry_count=sum(len(group.entries) for group in groups),
        distinct_days=len(groups),
        unfiltered_count=len(items),
    )
