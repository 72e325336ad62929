from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Iterable, Mapping, Optional

from ...attendance.codec import AttendanceCodec
from ...core.enums import AttendanceStatus, CalculationPolicy
from ...core.exceptions import ValidationError
from ..model import PayrollTotals


def _sum_values(items: Iterable[Any]) -> float:
    total = 0.0
    for item in items:
        value = item.get("value") if isinstance(item, Mapping) else getattr(item, "value", None)
        total += float(value or 0)
    return total


class PayrollCalculator(ABC):
    """Calculator interface (Strategy Pattern for overtime policy).

    ``calculate`` is pure: the same inputs always give the same totals.
    Subclasses only decide how overtime hours become equivalent days.
    """

    policy: CalculationPolicy

    @abstractmethod
    def overtime_days(self, total_overtime_hours: int) -> float:
        raise NotImplementedError

    def calculate(
        self,
        *,
        rate: float,
        attendance: Any,
        payouts: Any,
        additional_req_pays: Any,
        carry_forward: Optional[float] = 0,
    ) -> PayrollTotals:
        for name, value in (
            ("attendance", attendance),
            ("payouts", payouts),
            ("additional_req_pays", additional_req_pays),
        ):
            if not isinstance(value, (list, tuple)):
                raise ValidationError(f"Invalid employee data structure - {name} must be a list")

        total_days = 0
        total_overtime_hours = 0
        for code in attendance:
            decoded = AttendanceCodec.decode(code)
            if decoded.status == AttendanceStatus.PRESENT:
                total_days += 1
            total_overtime_hours += decoded.overtime_hours

        overtime_days = self.overtime_days(total_overtime_hours)
        total_attendance = total_days + overtime_days
        total_wage = float(rate or 0) * total_attendance
        total_payouts = _sum_values(payouts)
        total_additional = _sum_values(additional_req_pays)
        carry = float(carry_forward or 0)

        return PayrollTotals(
            total_days=total_days,
            total_overtime_hours=total_overtime_hours,
            overtime_days=overtime_days,
            total_attendance=total_attendance,
            total_wage=total_wage,
            total_payouts=total_payouts,
            total_additional_pays=total_additional,
            carry_forward=carry,
            closing_balance=total_wage + total_additional + carry - total_payouts,
            policy=self.policy,
        )

    def calculate_record(self, record) -> PayrollTotals:
        """Convenience wrapper for an EmployeeMonthRecord."""
        return self.calculate(
            rate=record.rate,
            attendance=record.attendance,
            payouts=record.payouts,
            additional_req_pays=record.additional_req_pays,
            carry_forward=record.carry_forwarded.value if record.carry_forwarded else 0,
        )

    def apply_to(self, record):
        """Return ``record`` with wage and closing balance recomputed (rounded to cents)."""
        totals = self.calculate_record(record)
        return replace(
            record,
            wage=round(totals.total_wage, 2),
            closing_balance=round(totals.closing_balance, 2),
        )
