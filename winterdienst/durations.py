from __future__ import annotations

from datetime import time
from typing import Union

MINUTES_PER_DAY = 24 * 60

ClockValue = Union[str, time]


def parse_clock(value: ClockValue) -> int:
    """Return minutes since midnight for ``"HH:MM"``, ``"HH:MM:SS"`` or a ``time``."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    hours, minutes = value.strip().split(":")[:2]
    return int(hours) * 60 + int(minutes)


def duration_minutes(start: ClockValue, end: ClockValue) -> int:
    diff = parse_clock(end) - parse_clock(start)
    # midnight crossover, e.g. 23:55 -> 00:25
    if diff < 0:
        diff += MINUTES_PER_DAY
    return diff


def format_clock(value: ClockValue | None) -> str:
    if value is None or value == "":
        return ""
    minutes = parse_clock(value)
    hours, remainder = divmod(minutes, 60)
    return f"{hours:02d}:{remainder:02d}"


def format_minutes(value: int) -> str:
    hours, minutes = divmod(int(value), 60)
    return f"{hours}h {minutes}min"


def format_hours(value: float) -> str:
    hours = int(value)
    minutes = int(round((value - hours) * 60))
    if minutes == 60:
        hours, minutes = hours + 1, 0
    return f"{hours}h {minutes}min"
