from __future__ import annotations

from dataclasses import asdict, dataclass

from ..core.enums import CalculationPolicy


@dataclass(frozen=True)
class PayrollTotals:
    """Derived numbers for one employee month."""

    total_days: int
    total_overtime_hours: int
    overtime_days: float
    total_attendance: float
    total_wage: float
    total_payouts: float
    total_additional_pays: float
    carry_forward: float
    closing_balance: float
    policy: CalculationPolicy

    def as_dict(self) -> dict:
        data = asdict(self)
        data["policy"] = self.policy.value
        return data
