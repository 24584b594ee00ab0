from __future__ import annotations

from calendar import monthrange
from datetime import date, timedelta

from .schemas import Period

GRANULARITIES = ("day", "week", "month")

WEEKDAY_NAMES = (
    "Montag",
    "Dienstag",
    "Mittwoch",
    "Donnerstag",
    "Freitag",
    "Samstag",
    "Sonntag",
)

MONTH_NAMES = (
    "Januar",
    "Februar",
    "März",
    "April",
    "Mai",
    "Juni",
    "Juli",
    "August",
    "September",
    "Oktober",
    "November",
    "Dezember",
)


def week_bounds(day: date) -> tuple[date, date]:
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def month_bounds(day: date) -> tuple[date, date]:
    last_day = monthrange(day.year, day.month)[1]
    return day.replace(day=1), date(day.year, day.month, last_day)


def iso_week_number(day: date) -> int:
    return day.isocalendar()[1]


def format_date(day: date) -> str:
    return day.strftime("%d.%m.%Y")


def format_day_label(day: date) -> str:
    return f"{WEEKDAY_NAMES[day.weekday()]}, {format_date(day)}"


def format_long_day_label(day: date) -> str:
    return f"{WEEKDAY_NAMES[day.weekday()]}, {day.day:02d}. {MONTH_NAMES[day.month - 1]} {day.year}"


def format_month_label(day: date) -> str:
    return f"{MONTH_NAMES[day.month - 1]} {day.year}"


def resolve_period(reference: date, granularity: str) -> Period:
    if granularity == "day":
        return Period(
            start=reference,
            end=reference,
            label=format_long_day_label(reference),
            granularity=granularity,
        )
    if granularity == "week":
        start, end = week_bounds(reference)
        label = f"{start.strftime('%d.%m.')} - {format_date(end)} (KW {iso_week_number(reference)})"
        return Period(start=start, end=end, label=label, granularity=granularity)
    if granularity == "month":
        start, end = month_bounds(reference)
        return Period(start=start, end=end, label=format_month_label(reference), granularity=granularity)
    raise ValueError(f"Unbekannte Ansicht: {granularity}")


def shift_reference(reference: date, granularity: str, steps: int) -> date:
    """Move ``reference`` by ``steps`` days, weeks or months."""
    if granularity == "day":
        return reference + timedelta(days=steps)
    if granularity == "week":
        return reference + timedelta(weeks=steps)
    if granularity == "month":
        month_index = reference.year * 12 + (reference.month - 1) + steps
        year, month = divmod(month_index, 12)
        month += 1
        day = min(reference.day, monthrange(year, month)[1])
        return date(year, month, day)
    raise ValueError(f"Unbekannte Ansicht: {granularity}")
