from __future__ import annotations

from ...core.constants import HOURS_PER_OVERTIME_DAY
from ...core.enums import CalculationPolicy
from .base import PayrollCalculator


class StandardPayrollCalculator(PayrollCalculator):
    """Default rule: every 8 overtime hours count as one day, linearly."""

    policy = CalculationPolicy.DEFAULT

    def overtime_days(self, total_overtime_hours: int) -> float:
        return total_overtime_hours / HOURS_PER_OVERTIME_DAY
