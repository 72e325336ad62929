"""Forward propagation of closing balances across months.

Editing month M invalidates the carry-forward of every later month of the
same employee at the same site, so those months are flagged
``recalculation_needed``. A sweep then repairs them oldest first: each
month takes the previous month's closing balance as its carry-forward, is
recomputed and saved clean, and the next oldest flagged month follows.

The sweep is a worklist loop with an iteration cap. Hitting the cap raises
``RecalculationDepthExceeded`` instead of silently stopping.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Optional, Sequence, Union

from ..common.datetime_utils import next_period, period_key, previous_period
from ..common.validators import require_month, require_non_empty, require_year
from ..core.constants import DEFAULT_MAX_RECALCULATION_DEPTH, MAX_LEDGER_PAGE_SIZE
from ..core.enums import CalculationPolicy
from ..core.exceptions import RecalculationDepthExceeded, ValidationError
from ..employees.model import EmployeeMonthRecord
from ..employees.repository import EmployeeRepository
from ..payroll.calculator.base import PayrollCalculator
from ..payroll.calculator.factory import PayrollCalculatorFactory

logger = logging.getLogger(__name__)

PolicyArg = Optional[Union[CalculationPolicy, str]]


def _period_label(month: int, year: int) -> str:
    return f"{month:02d}/{year}"


@dataclass(frozen=True)
class SweepResult:
    site_id: str
    empid: str
    recalculated: tuple[tuple[int, int], ...] = ()

    @property
    def count(self) -> int:
        return len(self.recalculated)

    def to_dict(self) -> dict:
        return {
            "site_id": self.site_id,
            "empid": self.empid,
            "recalculated_count": self.count,
            "recalculated": [_period_label(m, y) for m, y in self.recalculated],
        }


@dataclass(frozen=True)
class CorrectionReport:
    succeeded: tuple[SweepResult, ...] = ()
    failed: tuple[dict, ...] = ()

    @property
    def records_recalculated(self) -> int:
        return sum(r.count for r in self.succeeded)

    def to_dict(self) -> dict:
        return {
            "employees_processed": len(self.succeeded) + len(self.failed),
            "employees_succeeded": len(self.succeeded),
            "employees_failed": len(self.failed),
            "records_recalculated": self.records_recalculated,
            "results": [r.to_dict() for r in self.succeeded],
            "errors": list(self.failed),
        }


class RecalculationCascade:
    def __init__(
        self,
        employees_repo: EmployeeRepository,
        calculator_factory: PayrollCalculatorFactory,
        *,
        max_depth: int = DEFAULT_MAX_RECALCULATION_DEPTH,
        workers: int = 1,
    ):
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self._repo = employees_repo
        self._factory = calculator_factory
        self._max_depth = int(max_depth)
        self._workers = max(1, int(workers))

    @property
    def max_depth(self) -> int:
        return self._max_depth

    # -------- Clean -> Dirty --------
    def mark_future_months(self, *, site_id: str, empid: str, month: int, year: int, reason: str) -> int:
        count = self._repo.mark_later_months_dirty(site_id=site_id, empid=empid, month=month, year=year, reason=reason)
        if count:
            logger.info(
                "later months marked for recalculation",
                extra={"site_id": site_id, "empid": empid, "after": _period_label(month, year), "count": count},
            )
        return count

    def mark_for_recalculation(
        self,
        *,
        site_id: str,
        reason: str,
        empid: Optional[str] = None,
        from_month: Optional[int] = None,
        from_year: Optional[int] = None,
    ) -> int:
        site_id = require_non_empty(site_id, "site_id")
        if (from_month is None) != (from_year is None):
            raise ValidationError("from_month and from_year must be given together")
        if from_month is not None:
            from_month = require_month(from_month, "from_month")
            from_year = require_year(from_year, "from_year")
        count = self._repo.mark_dirty(
            site_id=site_id,
            reason=reason,
            empid=empid,
            from_month=from_month,
            from_year=from_year,
        )
        logger.info("records marked for recalculation", extra={"site_id": site_id, "empid": empid, "count": count})
        return count

    # -------- carry forward --------
    def previous_balance(self, *, site_id: str, empid: str, month: int, year: int) -> tuple[float, Optional[tuple[int, int]]]:
        """Closing balance to carry into (month, year) and the period it came from.

        Prefers the immediately preceding month, then the latest earlier month
        (employment gaps), else 0.
        """
        prev_month, prev_year = previous_period(month, year)
        prev = self._repo.get(site_id=site_id, empid=empid, month=prev_month, year=prev_year)
        if prev is None:
            prev = self._repo.find_latest_before(site_id=site_id, empid=empid, month=month, year=year)
        if prev is None:
            return 0.0, None
        return float(prev.closing_balance), prev.period

    def recompute(self, record: EmployeeMonthRecord, calculator: PayrollCalculator) -> EmployeeMonthRecord:
        """Refresh carry-forward from the previous month and recompute. Does not save."""
        carry_value, source = self.previous_balance(
            site_id=record.site_id, empid=record.empid, month=record.month, year=record.year
        )
        fixed = replace(
            record.with_legacy_fixes(),
            carry_forwarded=replace(record.carry_forwarded, value=carry_value),
            recalculation_needed=False,
            modification_reason=None,
        )
        logger.debug(
            "carry forward refreshed",
            extra={
                "empid": record.empid,
                "period": _period_label(record.month, record.year),
                "carry_forward": carry_value,
                "source": _period_label(*source) if source else None,
            },
        )
        return calculator.apply_to(fixed)

    # -------- Dirty -> Clean --------
    def sweep(self, *, site_id: str, empid: str, policy: PolicyArg = None) -> SweepResult:
        calculator = self._factory.for_policy(policy)
        processed: list[tuple[int, int]] = []

        while True:
            dirty = self._repo.find_oldest_dirty(site_id=site_id, empid=empid)
            if dirty is None:
                break
            if len(processed) >= self._max_depth:
                logger.error(
                    "recalculation cap reached",
                    extra={"site_id": site_id, "empid": empid, "max_depth": self._max_depth},
                )
                raise RecalculationDepthExceeded(site_id=site_id, empid=empid, max_depth=self._max_depth)

            updated = self.recompute(dirty, calculator)
            self._repo.save(updated, expected_version=dirty.version)
            processed.append(dirty.period)
            logger.info(
                "month recalculated",
                extra={
                    "site_id": site_id,
                    "empid": empid,
                    "period": _period_label(dirty.month, dirty.year),
                    "carry_forward": updated.carry_forwarded.value,
                    "closing_balance": updated.closing_balance,
                },
            )

        return SweepResult(site_id=site_id, empid=empid, recalculated=tuple(processed))

    def ensure_fresh(self, record: EmployeeMonthRecord, *, policy: PolicyArg = None) -> EmployeeMonthRecord:
        """Read-side repair: sweep the employee if this record is stale, then reload it."""
        if not record.recalculation_needed:
            return record
        self.sweep(site_id=record.site_id, empid=record.empid, policy=policy)
        fresh = self._repo.get(site_id=record.site_id, empid=record.empid, month=record.month, year=record.year)
        return fresh or record

    # -------- batch --------
    def correct_all(
        self,
        *,
        site_id: Optional[str] = None,
        empids: Optional[Sequence[str]] = None,
        policy: PolicyArg = None,
    ) -> CorrectionReport:
        """Sweep every employee with stale months.

        Each employee's months are processed in order by one worker; one
        employee failing does not stop the others.
        """
        targets: list[tuple[str, str]] = []
        wanted = set(empids) if empids else None
        for record in self._repo.list_dirty(site_id=site_id):
            pair = (record.site_id, record.empid)
            if wanted is not None and record.empid not in wanted:
                continue
            if pair not in targets:
                targets.append(pair)

        if self._workers > 1 and len(targets) > 1:
            with ThreadPoolExecutor(max_workers=self._workers) as pool:
                outcomes = list(pool.map(lambda t: self._correct_one(t[0], t[1], policy), targets))
        else:
            outcomes = [self._correct_one(s, e, policy) for s, e in targets]

        succeeded = tuple(o for o in outcomes if isinstance(o, SweepResult))
        failed = tuple(o for o in outcomes if isinstance(o, dict))
        report = CorrectionReport(succeeded=succeeded, failed=failed)
        logger.info(
            "batch recalculation finished",
            extra={
                "site_id": site_id,
                "employees": len(targets),
                "records_recalculated": report.records_recalculated,
                "errors": len(failed),
            },
        )
        return report

    def _correct_one(self, site_id: str, empid: str, policy: PolicyArg) -> Union[SweepResult, dict]:
        try:
            return self.sweep(site_id=site_id, empid=empid, policy=policy)
        except Exception as exc:
            logger.exception("recalculation failed for employee", extra={"site_id": site_id, "empid": empid})
            return {
                "site_id": site_id,
                "empid": empid,
                "error": str(exc),
                "error_type": type(exc).__name__,
            }

    # -------- reporting --------
    def status(self, *, site_id: str) -> dict:
        site_id = require_non_empty(site_id, "site_id")
        employees: dict[str, dict] = {}
        dirty = list(self._repo.list_dirty(site_id=site_id))
        for record in dirty:
            row = employees.setdefault(
                record.empid,
                {
                    "empid": record.empid,
                    "name": record.name,
                    "pending_months": 0,
                    "oldest": record.period,
                    "latest": record.period,
                },
            )
            row["pending_months"] += 1
            if period_key(*record.period) < period_key(*row["oldest"]):
                row["oldest"] = record.period
            if period_key(*record.period) > period_key(*row["latest"]):
                row["latest"] = record.period

        summary = []
        for row in employees.values():
            summary.append({**row, "oldest": _period_label(*row["oldest"]), "latest": _period_label(*row["latest"])})
        return {
            "site_id": site_id,
            "total_pending": len(dirty),
            "employees_affected": len(summary),
            "needs_recalculation": bool(dirty),
            "employees": summary,
        }

    def list_pending(self, *, site_id: str, page: int = 1, page_size: int = 50) -> dict:
        if page < 1 or page_size < 1 or page_size > MAX_LEDGER_PAGE_SIZE:
            raise ValidationError("Invalid pagination parameters")
        total = self._repo.count_dirty(site_id=site_id)
        records = self._repo.list_dirty(site_id=site_id, limit=page_size, offset=(page - 1) * page_size)
        return {
            "records": [
                {
                    "empid": r.empid,
                    "name": r.name,
                    "month": r.month,
                    "year": r.year,
                    "closing_balance": r.closing_balance,
                    "modification_reason": r.modification_reason,
                }
                for r in records
            ],
            "pagination": {
                "page": page,
                "page_size": page_size,
                "total": total,
                "total_pages": (total + page_size - 1) // page_size,
            },
        }

    def detect_employment_gaps(self, *, site_id: str, empid: str) -> list[dict]:
        """Missing months between the first and last recorded month of an employee."""
        records = self._repo.list_for_employee(site_id=site_id, empid=empid)
        gaps: list[dict] = []
        for before, after in zip(records, records[1:]):
            missing = []
            cursor = next_period(*before.period)
            while period_key(*cursor) < period_key(*after.period):
                missing.append({"month": cursor[0], "year": cursor[1]})
                cursor = next_period(*cursor)
            if missing:
                gaps.append(
                    {
                        "after": _period_label(*before.period),
                        "before": _period_label(*after.period),
                        "missing_months": missing,
                    }
                )
        return gaps
