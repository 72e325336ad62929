from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional, Sequence

from ..common.datetime_utils import utc_now
from ..core.constants import DEFAULT_DISPLAY_TIMEZONE, DEFAULT_LEDGER_PAGE_SIZE, MAX_LEDGER_PAGE_SIZE
from ..core.enums import FieldKind, TrackedField
from ..core.exceptions import TrackingFailure, ValidationError
from .diff_engine import ChangeAnalysis
from .messages import display_message
from .model import AtomicChange, ChangeContext, ChangeLedgerEntry, LedgerFilters, LedgerPage
from .repository import ChangeLedgerRepository

logger = logging.getLogger(__name__)


class ChangeLedger:
    """Append-only audit log with one entry per atomic change.

    Writes never update existing entries. A failed write is raised as
    ``TrackingFailure`` so the caller can report it next to a data write that
    already succeeded.
    """

    def __init__(
        self,
        repo: ChangeLedgerRepository,
        *,
        clock: Callable[[], datetime] = utc_now,
        display_timezone: str = DEFAULT_DISPLAY_TIMEZONE,
    ):
        self._repo = repo
        self._clock = clock
        self._tz = display_timezone

    def record(
        self,
        changes: Sequence[AtomicChange],
        context: ChangeContext,
        *,
        analysis: Optional[ChangeAnalysis] = None,
    ) -> int:
        if not changes:
            return 0

        timestamp = self._clock()
        entries = [self._build_entry(change, context, timestamp, analysis) for change in changes]
        try:
            written = self._repo.append_many(entries)
        except Exception as exc:
            logger.warning(
                "change ledger write failed",
                exc_info=True,
                extra={
                    "site_id": context.site_id,
                    "employee_id": context.employee_id,
                    "period": f"{context.month:02d}/{context.year}",
                    "entries": len(entries),
                },
            )
            raise TrackingFailure(f"Could not write {len(entries)} change ledger entries: {exc}") from exc

        logger.info(
            "change ledger entries written",
            extra={
                "site_id": context.site_id,
                "employee_id": context.employee_id,
                "period": f"{context.month:02d}/{context.year}",
                "entries": written,
                "update_type": analysis.update_type.value if analysis else None,
            },
        )
        return written

    def _build_entry(
        self,
        change: AtomicChange,
        context: ChangeContext,
        timestamp: datetime,
        analysis: Optional[ChangeAnalysis],
    ) -> ChangeLedgerEntry:
        metadata = {
            "display_message": display_message(
                change,
                employee_id=context.employee_id,
                month=context.month,
                year=context.year,
                changed_by=context.changed_by,
                timestamp=timestamp,
                tz_name=self._tz,
            ),
            "is_attendance_change": change.field_kind == FieldKind.STRING_ARRAY,
            "is_payment_change": change.field_kind == FieldKind.OBJECT_ARRAY,
            "is_rate_change": change.field_kind == FieldKind.NUMBER,
        }
        if analysis is not None:
            metadata.update(analysis.to_metadata())
        metadata.update(context.extra)

        return ChangeLedgerEntry(
            site_id=context.site_id,
            employee_id=context.employee_id,
            month=int(context.month),
            year=int(context.year),
            field=change.field,
            field_display_name=change.field_display_name,
            field_type=change.field_kind,
            change_type=change.change_type,
            change_description=change.description,
            change_data=dict(change.data),
            changed_by=context.changed_by,
            remark=context.remark or "",
            timestamp=timestamp,
            metadata=metadata,
        )

    # -------- reads --------
    def query(
        self,
        filters: LedgerFilters,
        *,
        page: int = 1,
        page_size: int = DEFAULT_LEDGER_PAGE_SIZE,
        descending: bool = True,
    ) -> LedgerPage:
        if page < 1:
            raise ValidationError("page must be 1 or greater")
        if page_size < 1 or page_size > MAX_LEDGER_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {MAX_LEDGER_PAGE_SIZE}")
        if filters.start and filters.end and filters.start > filters.end:
            raise ValidationError("start must not be after end")

        total = self._repo.count(filters)
        entries = self._repo.query(
            filters,
            limit=page_size,
            offset=(page - 1) * page_size,
            descending=descending,
        )
        return LedgerPage(entries=list(entries), total=total, page=page, page_size=page_size)

    def field_history(
        self,
        *,
        site_id: str,
        employee_id: str,
        field: TrackedField,
        page: int = 1,
        page_size: int = DEFAULT_LEDGER_PAGE_SIZE,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> LedgerPage:
        filters = LedgerFilters(site_id=site_id, employee_id=employee_id, field=field, start=start, end=end)
        return self.query(filters, page=page, page_size=page_size)

    def statistics(
        self,
        *,
        site_id: Optional[str] = None,
        field: Optional[TrackedField] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> dict:
        rows = list(self._repo.statistics(LedgerFilters(site_id=site_id, field=field, start=start, end=end)))
        for row in rows:
            if isinstance(row.get("last_change"), datetime):
                row["last_change"] = row["last_change"].isoformat()
        return {
            "site_id": site_id,
            "total_changes": sum(int(r["total"]) for r in rows),
            "fields": rows,
        }

    def recent(self, *, site_id: Optional[str] = None, limit: int = 20) -> list[ChangeLedgerEntry]:
        if limit < 1 or limit > MAX_LEDGER_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_LEDGER_PAGE_SIZE}")
        return list(self._repo.query(LedgerFilters(site_id=site_id), limit=limit, offset=0, descending=True))
