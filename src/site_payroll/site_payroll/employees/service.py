from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional, Sequence, Union

from ..common.datetime_utils import is_later_period, now_local
from ..common.validators import (
    require_month,
    require_non_empty,
    require_positive_rate,
    require_year,
)
from ..core.constants import SYSTEM_ACTOR
from ..core.enums import CalculationPolicy, ChangeType
from ..core.exceptions import ConflictError, DomainError, NotFoundError, ValidationError
from ..payroll.calculator.factory import PayrollCalculatorFactory
from ..recalculation.cascade import RecalculationCascade
from ..tracking.diff_engine import record_change
from ..tracking.ledger import ChangeLedger
from ..tracking.model import ChangeContext
from .model import BatchResult, CarryForward, EmployeeMonthRecord, EmployeeWriteResult
from .repository import EmployeeRepository

logger = logging.getLogger(__name__)

PolicyArg = Optional[Union[CalculationPolicy, str]]


class EmployeeService:
    """Employee month lifecycle: create, import, read, delete.

    Every lifecycle write also appends one ``record`` entry to the change
    ledger holding the full snapshot. Ledger failures do not undo the write;
    they come back as ``tracking_warning``.
    """

    def __init__(
        self,
        employees_repo: EmployeeRepository,
        *,
        ledger: ChangeLedger,
        cascade: RecalculationCascade,
        calculator_factory: PayrollCalculatorFactory,
        clock: Callable[[], datetime] = now_local,
    ):
        self._repo = employees_repo
        self._ledger = ledger
        self._cascade = cascade
        self._factory = calculator_factory
        self._clock = clock

    def _track(
        self,
        record: EmployeeMonthRecord,
        change_type: ChangeType,
        *,
        actor: str,
        remark: str,
        description: str,
    ) -> tuple[int, Optional[str]]:
        try:
            written = self._ledger.record(
                [record_change(record.to_dict(), change_type, description=description)],
                ChangeContext(
                    site_id=record.site_id,
                    employee_id=record.empid,
                    month=record.month,
                    year=record.year,
                    changed_by=actor,
                    remark=remark,
                ),
            )
        except DomainError as exc:
            logger.warning(
                "lifecycle change not tracked",
                extra={"site_id": record.site_id, "empid": record.empid, "change_type": change_type.value},
            )
            return 0, str(exc)
        return written, None

    # -------- create --------
    def create_employee(
        self,
        *,
        name: str,
        site_id: str,
        rate: Any,
        month: Optional[int] = None,
        year: Optional[int] = None,
        actor: Optional[str] = None,
        policy: PolicyArg = None,
    ) -> EmployeeWriteResult:
        name = require_non_empty(name, "name")
        site_id = require_non_empty(site_id, "site_id")
        rate = require_positive_rate(rate)
        now = self._clock()
        month = require_month(month if month is not None else now.month)
        year = require_year(year if year is not None else now.year)
        actor = (actor or "").strip() or SYSTEM_ACTOR

        draft = EmployeeMonthRecord(
            site_id=site_id,
            empid="",
            name=name,
            month=month,
            year=year,
            rate=rate,
            carry_forwarded=CarryForward(value=0.0, remark="Initial setup - new employee", date=now.date().isoformat()),
            created_by=actor,
        )
        record = self._repo.insert_new_employee(self._factory.for_policy(policy).apply_to(draft))
        empid = record.empid
        written, warning = self._track(
            record,
            ChangeType.ADDED,
            actor=actor,
            remark=f"Employee {name} created",
            description=f"Employee {name} ({empid}) created for {month:02d}/{year} at daily rate {rate:g}",
        )
        logger.info("employee created", extra={"site_id": site_id, "empid": empid, "period": f"{month:02d}/{year}"})
        return EmployeeWriteResult(record=record, changes_written=written, tracking_warning=warning)

    # -------- read --------
    def get_employee_data(self, *, site_id: str, empid: str, month: int, year: int, policy: PolicyArg = None) -> EmployeeMonthRecord:
        """Return the record with a trustworthy closing balance (stale months are swept first)."""
        month = require_month(month)
        year = require_year(year)
        record = self._repo.get(site_id=site_id, empid=empid, month=month, year=year)
        if record is None:
            raise NotFoundError(f"Employee {empid} not found for {month:02d}/{year} at site {site_id}")
        return self._cascade.ensure_fresh(record, policy=policy)

    def list_employees(self, *, site_id: str, month: int, year: int, policy: PolicyArg = None) -> list[EmployeeMonthRecord]:
        site_id = require_non_empty(site_id, "site_id")
        month = require_month(month)
        year = require_year(year)
        return [
            self._cascade.ensure_fresh(r, policy=policy)
            for r in self._repo.list_for_period(site_id=site_id, month=month, year=year)
        ]

    # -------- delete --------
    def delete_month(
        self,
        *,
        site_id: str,
        empid: str,
        month: int,
        year: int,
        actor: Optional[str] = None,
        remark: Optional[str] = None,
    ) -> EmployeeWriteResult:
        month = require_month(month)
        year = require_year(year)
        actor = (actor or "").strip() or SYSTEM_ACTOR
        record = self._repo.get(site_id=site_id, empid=empid, month=month, year=year)
        if record is None:
            raise NotFoundError(f"Employee {empid} not found for {month:02d}/{year} at site {site_id}")

        written, warning = self._track(
            record,
            ChangeType.REMOVED,
            actor=actor,
            remark=remark or f"Deleted {month:02d}/{year}",
            description=f"Employee {record.name} ({empid}) record for {month:02d}/{year} deleted",
        )
        self._repo.delete(site_id=site_id, empid=empid, month=month, year=year)
        marked = self._cascade.mark_future_months(
            site_id=site_id,
            empid=empid,
            month=month,
            year=year,
            reason=f"Deleted {month:02d}/{year} by {actor}",
        )
        logger.info("employee month deleted", extra={"site_id": site_id, "empid": empid, "period": f"{month:02d}/{year}"})
        return EmployeeWriteResult(record=record, changes_written=written, later_months_marked=marked, tracking_warning=warning)

    def delete_all(
        self,
        *,
        site_id: str,
        empid: str,
        actor: Optional[str] = None,
        remark: Optional[str] = None,
    ) -> dict:
        actor = (actor or "").strip() or SYSTEM_ACTOR
        records = list(self._repo.list_for_employee(site_id=site_id, empid=empid))
        if not records:
            raise NotFoundError(f"Employee {empid} not found at site {site_id}")

        written = 0
        warnings: list[str] = []
        for record in records:
            count, warning = self._track(
                record,
                ChangeType.REMOVED,
                actor=actor,
                remark=remark or "Deleted all months",
                description=f"Employee {record.name} ({empid}) record for {record.month:02d}/{record.year} deleted",
            )
            written += count
            if warning:
                warnings.append(warning)

        deleted = self._repo.delete_all(site_id=site_id, empid=empid)
        logger.info("employee deleted", extra={"site_id": site_id, "empid": empid, "months": deleted})
        return {
            "empid": empid,
            "deleted_months": deleted,
            "changes_written": written,
            "tracking_warning": "; ".join(warnings) or None,
        }

    def bulk_delete(
        self,
        *,
        site_id: str,
        month: int,
        year: int,
        empids: Sequence[str],
        actor: Optional[str] = None,
        remark: Optional[str] = None,
    ) -> BatchResult:
        if not empids:
            raise ValidationError("No employee ids given")
        succeeded: list[dict] = []
        failed: list[dict] = []
        for empid in empids:
            try:
                result = self.delete_month(site_id=site_id, empid=empid, month=month, year=year, actor=actor, remark=remark)
            except DomainError as exc:
                failed.append({"empid": empid, "error": str(exc), "error_type": type(exc).__name__})
                continue
            succeeded.append(
                {
                    "empid": empid,
                    "changes_written": result.changes_written,
                    "later_months_marked": result.later_months_marked,
                    "tracking_warning": result.tracking_warning,
                }
            )
        return BatchResult(succeeded=tuple(succeeded), failed=tuple(failed))

    # -------- import --------
    def _validate_periods(self, source_month, source_year, target_month, target_year) -> tuple[int, int, int, int]:
        sm = require_month(source_month, "source_month")
        sy = require_year(source_year, "source_year")
        tm = require_month(target_month, "target_month")
        ty = require_year(target_year, "target_year")
        if (sm, sy) == (tm, ty):
            raise ValidationError("Source and target month cannot be the same")
        return sm, sy, tm, ty

    def available_for_import(
        self,
        *,
        site_id: str,
        source_month: int,
        source_year: int,
        target_month: int,
        target_year: int,
        policy: PolicyArg = None,
    ) -> list[dict]:
        site_id = require_non_empty(site_id, "site_id")
        sm, sy, tm, ty = self._validate_periods(source_month, source_year, target_month, target_year)
        existing = {r.empid for r in self._repo.list_for_period(site_id=site_id, month=tm, year=ty)}
        out = []
        for record in self._repo.list_for_period(site_id=site_id, month=sm, year=sy):
            fresh = self._cascade.ensure_fresh(record, policy=policy)
            out.append(
                {
                    "empid": fresh.empid,
                    "name": fresh.name,
                    "rate": fresh.rate,
                    "closing_balance": fresh.closing_balance,
                    "exists_in_target": fresh.empid in existing,
                }
            )
        return out

    def import_between_months(
        self,
        *,
        site_id: str,
        source_month: int,
        source_year: int,
        target_month: int,
        target_year: int,
        empids: Optional[Sequence[str]] = None,
        preserve_carry_forward: bool = True,
        preserve_additional_pays: bool = False,
        actor: Optional[str] = None,
        policy: PolicyArg = None,
    ) -> BatchResult:
        """Copy employees from one month into another.

        Any employee already present in the target month rejects the whole
        request with ConflictError listing them; no record is written. Past
        that check, failures are collected per employee.
        """
        site_id = require_non_empty(site_id, "site_id")
        sm, sy, tm, ty = self._validate_periods(source_month, source_year, target_month, target_year)
        actor = (actor or "").strip() or SYSTEM_ACTOR

        sources = list(self._repo.list_for_period(site_id=site_id, month=sm, year=sy, empids=empids or None))
        if not sources:
            raise NotFoundError(f"No employees found for {sm:02d}/{sy} at site {site_id}")

        existing = self._repo.list_for_period(
            site_id=site_id, month=tm, year=ty, empids=[r.empid for r in sources]
        )
        if existing:
            ids = sorted(r.empid for r in existing)
            raise ConflictError(
                f"Some employees already exist in {tm:02d}/{ty}: {', '.join(ids)}",
                conflicting_ids=ids,
            )

        target_is_later = is_later_period(tm, ty, than_month=sm, than_year=sy)
        calculator = self._factory.for_policy(policy)
        today = self._clock().date().isoformat()
        succeeded: list[dict] = []
        failed: list[dict] = []

        for source in sources:
            try:
                source = self._cascade.ensure_fresh(source, policy=policy)
                carry = source.closing_balance if (preserve_carry_forward and target_is_later) else 0.0
                if carry:
                    carry_remark = f"Carried forward from {sm:02d}/{sy} - Previous balance: {carry:g}"
                elif target_is_later:
                    carry_remark = f"New month import from {sm:02d}/{sy} - No carry forward"
                else:
                    carry_remark = f"Import from {sm:02d}/{sy} to past month - No carry forward applied"

                draft = EmployeeMonthRecord(
                    site_id=site_id,
                    empid=source.empid,
                    name=source.name,
                    month=tm,
                    year=ty,
                    rate=require_positive_rate(source.rate),
                    additional_req_pays=source.additional_req_pays if preserve_additional_pays else (),
                    carry_forwarded=CarryForward(value=carry, remark=carry_remark, date=today),
                    created_by=actor,
                )
                record = self._repo.insert(calculator.apply_to(draft.with_legacy_fixes()))
                written, warning = self._track(
                    record,
                    ChangeType.ADDED,
                    actor=actor,
                    remark=f"Imported from {sm:02d}/{sy}",
                    description=(
                        f"Employee {record.name} ({record.empid}) imported from {sm:02d}/{sy} to {tm:02d}/{ty}. "
                        + (f"Carry forward: {carry:g}" if target_is_later else "Past month import - No carry forward applied")
                    ),
                )
                marked = self._cascade.mark_future_months(
                    site_id=site_id,
                    empid=record.empid,
                    month=tm,
                    year=ty,
                    reason=f"Imported {tm:02d}/{ty} by {actor}",
                )
            except Exception as exc:
                logger.exception("employee import failed", extra={"site_id": site_id, "empid": source.empid})
                failed.append({"empid": source.empid, "error": str(exc), "error_type": type(exc).__name__})
                continue

            succeeded.append(
                {
                    "empid": record.empid,
                    "name": record.name,
                    "carry_forward": record.carry_forwarded.value,
                    "changes_written": written,
                    "later_months_marked": marked,
                    "tracking_warning": warning,
                }
            )

        logger.info(
            "import finished",
            extra={
                "site_id": site_id,
                "source": f"{sm:02d}/{sy}",
                "target": f"{tm:02d}/{ty}",
                "imported": len(succeeded),
                "failed": len(failed),
            },
        )
        return BatchResult(succeeded=tuple(succeeded), failed=tuple(failed))
