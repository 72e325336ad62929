from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from typing import Any, Optional


def now_local() -> datetime:
    """Current local time.

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def days_in_month(month: int, year: int) -> int:
    return calendar.monthrange(year, month)[1]


def previous_period(month: int, year: int) -> tuple[int, int]:
    if month == 1:
        return 12, year - 1
    return month - 1, year


def next_period(month: int, year: int) -> tuple[int, int]:
    if month == 12:
        return 1, year + 1
    return month + 1, year


def period_key(month: int, year: int) -> int:
    """Sortable integer for a (month, year) pair, e.g. 2024-03 -> 202403."""
    return year * 100 + month


def is_later_period(month: int, year: int, *, than_month: int, than_year: int) -> bool:
    return year > than_year or (year == than_year and month > than_month)


def coerce_datetime(value: Any) -> Optional[datetime]:
    """Best-effort conversion of stored/posted date values (date, datetime, ISO string)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def iso_day(value: Any) -> Optional[str]:
    """YYYY-MM-DD form of a date-like value, or None when it cannot be parsed."""
    dt = coerce_datetime(value)
    return dt.strftime("%Y-%m-%d") if dt else None
