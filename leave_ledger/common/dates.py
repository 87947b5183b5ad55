"""Week arithmetic shared by the overtime engine and the capacity calculator.

Weeks start on Monday.
"""

from __future__ import annotations

from datetime import date, timedelta


def start_of_week(day: date) -> date:
    """Monday of the week containing *day*."""
    return day - timedelta(days=day.weekday())


def end_of_week(day: date) -> date:
    """Sunday of the week containing *day*."""
    return start_of_week(day) + timedelta(days=6)


def inclusive_days(start: date, end: date) -> int:
    """Number of calendar days in ``[start, end]``; 0 when the range is empty."""
    if end < start:
        return 0
    return (end - start).days + 1


def format_display_date(day: date) -> str:
    """Human form used in notification text, e.g. ``Oct 12, 2026``."""
    return f"{day:%b} {day.day}, {day.year}"
