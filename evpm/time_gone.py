from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

from evpm.config import FRIDAY

DateLike = Union[date, datetime, str, None]


@dataclass(frozen=True)
class TimeGone:
    percentage: float
    passed_days: int
    total_days: int
    date_label: str


def to_date(value: DateLike) -> date:
    """Coerce a date, datetime or ISO string (``YYYY-MM-DD[T...]``) to a ``date``; ``None`` is today."""
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip().split("T")[0])


def format_date_label(day: date) -> str:
    return f"{calendar.day_name[day.weekday()]}, {day.day} {calendar.month_name[day.month]} {day.year}"


def compute_time_gone(reference: DateLike = None, off_weekday: int = FRIDAY) -> TimeGone:
    """Share of the month's working days elapsed up to and including ``reference``.

    Every day of the reference month counts as a working day unless it falls on
    ``off_weekday`` (Monday=0). The percentage is clamped to [0, 100] and is 0
    when the month has no working days at all.
    """
    ref = to_date(reference)
    days_in_month = calendar.monthrange(ref.year, ref.month)[1]

    total = 0
    passed = 0
    for day_num in range(1, days_in_month + 1):
        if date(ref.year, ref.month, day_num).weekday() == off_weekday:
            continue
        total += 1
        if day_num <= ref.day:
            passed += 1

    percentage = (passed / total) * 100 if total > 0 else 0.0
    percentage = max(0.0, min(percentage, 100.0))
    return TimeGone(
        percentage=percentage,
        passed_days=passed,
        total_days=total,
        date_label=format_date_label(ref),
    )


def next_working_day(day: DateLike, off_weekday: int = FRIDAY, max_lookahead: int = 5) -> Optional[date]:
    """Next non-off day after ``day`` within the same month, or ``None``."""
    start = to_date(day)
    candidate = start
    for _ in range(max_lookahead):
        candidate = candidate + timedelta(days=1)
        if candidate.month != start.month:
            return None
        if candidate.weekday() == off_weekday:
            continue
        return candidate
    return None
