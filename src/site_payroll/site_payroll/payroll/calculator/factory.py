from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from ...core.enums import CalculationPolicy
from ...core.exceptions import ValidationError
from .base import PayrollCalculator
from .special_calculator import SpecialPayrollCalculator
from .standard_calculator import StandardPayrollCalculator


@dataclass
class PayrollCalculatorFactory:
    """Factory Pattern: choose the overtime policy for a caller or site."""

    default_policy: CalculationPolicy = CalculationPolicy.DEFAULT

    def for_policy(self, policy: Optional[Union[CalculationPolicy, str]] = None) -> PayrollCalculator:
        resolved = self.resolve(policy)
        if resolved == CalculationPolicy.SPECIAL:
            return SpecialPayrollCalculator()
        return StandardPayrollCalculator()

    def resolve(self, policy: Optional[Union[CalculationPolicy, str]] = None) -> CalculationPolicy:
        if policy is None or policy == "":
            return self.default_policy
        try:
            return CalculationPolicy(policy)
        except ValueError:
            raise ValidationError(f"Unknown calculation policy: {policy}")
