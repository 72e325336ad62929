from __future__ import annotations

from typing import Any

from ..core.constants import MAX_YEAR, MIN_YEAR
from ..core.exceptions import ValidationError


def require_non_empty(value: Any, field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} is required and cannot be empty")
    return str(value).strip()


def require_month(value: Any, field_name: str = "month") -> int:
    try:
        month = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number between 1 and 12")
    if month < 1 or month > 12:
        raise ValidationError(f"Invalid {field_name}: {value}. Must be between 1-12")
    return month


def require_year(value: Any, field_name: str = "year") -> int:
    try:
        year = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number between {MIN_YEAR} and {MAX_YEAR}")
    if year < MIN_YEAR or year > MAX_YEAR:
        raise ValidationError(f"Invalid {field_name}: {value}. Must be between {MIN_YEAR}-{MAX_YEAR}")
    return year


def require_positive_rate(value: Any) -> float:
    try:
        rate = float(value)
    except (TypeError, ValueError):
        raise ValidationError("rate must be a number greater than 0")
    if rate <= 0:
        raise ValidationError("rate must be greater than 0")
    return rate
