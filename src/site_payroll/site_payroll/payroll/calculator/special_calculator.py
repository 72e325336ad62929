from __future__ import annotations

from ...core.constants import HOURS_PER_OVERTIME_DAY
from ...core.enums import CalculationPolicy
from .base import PayrollCalculator


class SpecialPayrollCalculator(PayrollCalculator):
    """Whole overtime days count fully; leftover hours score a tenth of a day each.

    10 hours -> 1 + 2/10 = 1.2 days.
    """

    policy = CalculationPolicy.SPECIAL

    def overtime_days(self, total_overtime_hours: int) -> float:
        whole, leftover = divmod(int(total_overtime_hours), HOURS_PER_OVERTIME_DAY)
        return whole + leftover / 10
