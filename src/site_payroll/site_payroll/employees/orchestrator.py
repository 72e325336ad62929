from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence, Union

from ..common.datetime_utils import days_in_month
from ..common.validators import require_month, require_non_empty, require_positive_rate, require_year
from ..core.constants import SYSTEM_ACTOR
from ..core.enums import CalculationPolicy
from ..core.exceptions import DomainError, NotFoundError, ValidationError
from ..payroll.calculator.factory import PayrollCalculatorFactory
from ..recalculation.cascade import RecalculationCascade
from ..tracking.diff_engine import ChangeDiffEngine, analyze_changes
from ..tracking.ledger import ChangeLedger
from ..tracking.model import ChangeContext
from .model import BatchResult, EmployeeWriteResult
from .repository import EmployeeRepository

logger = logging.getLogger(__name__)

_LIST_FIELDS = ("attendance", "payouts", "additional_req_pays")


def validate_update(update: Mapping[str, Any], *, month: int, year: int) -> None:
    """Reject a malformed partial update before anything is written."""
    if not isinstance(update, Mapping) or not update:
        raise ValidationError("Update data is required")
    for name in _LIST_FIELDS:
        if name in update and not isinstance(update[name], (list, tuple)):
            raise ValidationError(f"{name} must be a list")
    if "rate" in update:
        require_positive_rate(update["rate"])
    if "attendance" in update:
        limit = days_in_month(month, year)
        if len(update["attendance"]) > limit:
            raise ValidationError(f"attendance has {len(update['attendance'])} entries but {month:02d}/{year} has {limit} days")
    for name in ("payouts", "additional_req_pays"):
        for item in update.get(name) or ():
            if not isinstance(item, Mapping):
                raise ValidationError(f"Each {name} entry must be an object")
            value = item.get("value")
            if value not in (None, ""):
                try:
                    float(value)
                except (TypeError, ValueError):
                    raise ValidationError(f"{name} value must be a number: {value!r}")
    if "carry_forwarded" in update and not isinstance(update["carry_forwarded"], Mapping):
        raise ValidationError("carry_forwarded must be an object")


class EmployeeUpdateOrchestrator:
    """Applies an update to one employee month.

    Order: load, sweep if stale, snapshot, apply, recompute and save, diff,
    ledger write, mark later months. The data write is all-or-nothing; a ledger failure
    after it is reported as ``tracking_warning`` rather than raised.
    """

    def __init__(
        self,
        employees_repo: EmployeeRepository,
        *,
        ledger: ChangeLedger,
        cascade: RecalculationCascade,
        calculator_factory: PayrollCalculatorFactory,
        diff_engine: Optional[ChangeDiffEngine] = None,
    ):
        self._repo = employees_repo
        self._ledger = ledger
        self._cascade = cascade
        self._factory = calculator_factory
        self._diff = diff_engine or ChangeDiffEngine()

    def update(
        self,
        *,
        site_id: str,
        empid: str,
        month: int,
        year: int,
        update: Mapping[str, Any],
        actor: Optional[str] = None,
        remark: Optional[str] = None,
        policy: Optional[Union[CalculationPolicy, str]] = None,
    ) -> EmployeeWriteResult:
        site_id = require_non_empty(site_id, "site_id")
        empid = require_non_empty(empid, "empid")
        month = require_month(month)
        year = require_year(year)
        validate_update(update, month=month, year=year)
        actor = (actor or "").strip() or SYSTEM_ACTOR
        calculator = self._factory.for_policy(policy)

        current = self._repo.get(site_id=site_id, empid=empid, month=month, year=year)
        if current is None:
            raise NotFoundError(f"Employee {empid} not found for {month:02d}/{year} at site {site_id}")
        # A stale month is swept oldest-first with every earlier stale month before the edit lands.
        current = self._cascade.ensure_fresh(current, policy=policy)

        # Legacy stamping is not a user change, so it is applied to both sides.
        old_snapshot = current.with_legacy_fixes().tracked_snapshot()
        changed = calculator.apply_to(current.with_update(update, actor=actor).with_legacy_fixes())
        saved = self._repo.save(changed, expected_version=current.version)
        new_snapshot = saved.tracked_snapshot()

        written = 0
        warning = None
        try:
            changes = self._diff.diff(old_snapshot, new_snapshot, month=month, year=year)
            analysis = analyze_changes(old_snapshot, new_snapshot, self._diff.fields)
            written = self._ledger.record(
                changes,
                ChangeContext(
                    site_id=site_id,
                    employee_id=empid,
                    month=month,
                    year=year,
                    changed_by=actor,
                    remark=remark or "",
                ),
                analysis=analysis,
            )
        except Exception as exc:
            logger.warning(
                "employee updated but change tracking failed",
                exc_info=True,
                extra={"site_id": site_id, "empid": empid, "period": f"{month:02d}/{year}"},
            )
            warning = f"Change tracking failed: {exc}"

        marked = 0
        if old_snapshot != new_snapshot or saved.closing_balance != current.closing_balance:
            marked = self._cascade.mark_future_months(
                site_id=site_id,
                empid=empid,
                month=month,
                year=year,
                reason=f"Updated {month:02d}/{year} by {actor}",
            )

        logger.info(
            "employee month updated",
            extra={
                "site_id": site_id,
                "empid": empid,
                "period": f"{month:02d}/{year}",
                "changes_written": written,
                "later_months_marked": marked,
            },
        )
        return EmployeeWriteResult(
            record=saved,
            changes_written=written,
            later_months_marked=marked,
            tracking_warning=warning,
        )

    def bulk_update(
        self,
        *,
        items: Sequence[Mapping[str, Any]],
        actor: Optional[str] = None,
        policy: Optional[Union[CalculationPolicy, str]] = None,
    ) -> BatchResult:
        """Each item: {site_id, empid, month, year, update, remark?}. Failures are collected."""
        if not items:
            raise ValidationError("No updates given")

        succeeded: list[dict] = []
        failed: list[dict] = []
        for index, item in enumerate(items):
            ident = {"index": index, "empid": item.get("empid"), "month": item.get("month"), "year": item.get("year")}
            try:
                result = self.update(
                    site_id=item.get("site_id"),
                    empid=item.get("empid"),
                    month=item.get("month"),
                    year=item.get("year"),
                    update=item.get("update") or {},
                    actor=actor,
                    remark=item.get("remark"),
                    policy=policy,
                )
            except DomainError as exc:
                failed.append({**ident, "error": str(exc), "error_type": type(exc).__name__})
                continue
            succeeded.append(
                {
                    **ident,
                    "changes_written": result.changes_written,
                    "later_months_marked": result.later_months_marked,
                    "tracking_warning": result.tracking_warning,
                }
            )

        logger.info("bulk update finished", extra={"succeeded": len(succeeded), "failed": len(failed)})
        return BatchResult(succeeded=tuple(succeeded), failed=tuple(failed))
