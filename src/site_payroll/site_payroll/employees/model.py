from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from ..core.constants import EMPLOYEE_ID_DIGITS, EMPLOYEE_ID_PREFIX, LEGACY_CREATED_BY


@dataclass(frozen=True)
class PaymentEntry:
    """One payout (advance) or additional pay (bonus) line."""

    value: float
    date: Optional[str] = None
    remark: str = ""
    created_by: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PaymentEntry":
        raw_value = data.get("value")
        try:
            value = float(raw_value) if raw_value not in (None, "") else 0.0
        except (TypeError, ValueError):
            value = 0.0
        raw_date = data.get("date")
        created_by = data.get("created_by", data.get("createdBy"))
        return cls(
            value=value,
            date=str(raw_date) if raw_date not in (None, "") else None,
            remark=str(data.get("remark") or ""),
            created_by=str(created_by) if created_by else None,
        )

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "date": self.date,
            "remark": self.remark,
            "created_by": self.created_by,
        }


@dataclass(frozen=True)
class CarryForward:
    value: float = 0.0
    remark: str = ""
    date: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "CarryForward":
        if not data:
            return cls()
        raw_date = data.get("date")
        return cls(
            value=float(data.get("value") or 0),
            remark=str(data.get("remark") or ""),
            date=str(raw_date) if raw_date else None,
        )

    def to_dict(self) -> dict:
        return {"value": self.value, "remark": self.remark, "date": self.date}


def to_payment_entries(items: Any) -> tuple[PaymentEntry, ...]:
    out: list[PaymentEntry] = []
    for item in items or ():
        out.append(item if isinstance(item, PaymentEntry) else PaymentEntry.from_dict(item))
    return tuple(out)


def format_employee_id(serial: int) -> str:
    return f"{EMPLOYEE_ID_PREFIX}{serial:0{EMPLOYEE_ID_DIGITS}d}"


@dataclass(frozen=True)
class EmployeeMonthRecord:
    """One employee at one site for one month.

    ``wage`` and ``closing_balance`` are derived by the payroll calculator and
    are only trustworthy while ``recalculation_needed`` is False.
    """

    site_id: str
    empid: str
    name: str
    month: int
    year: int
    rate: float
    attendance: tuple[Optional[str], ...] = ()
    payouts: tuple[PaymentEntry, ...] = ()
    additional_req_pays: tuple[PaymentEntry, ...] = ()
    carry_forwarded: CarryForward = field(default_factory=CarryForward)
    wage: float = 0.0
    closing_balance: float = 0.0
    recalculation_needed: bool = False
    modification_reason: Optional[str] = None
    created_by: Optional[str] = None
    version: int = 0
    record_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[str, str, int, int]:
        return (self.site_id, self.empid, self.month, self.year)

    @property
    def period(self) -> tuple[int, int]:
        return (self.month, self.year)

    def tracked_snapshot(self) -> dict:
        """The subset of fields the change ledger diffs."""
        return {
            "attendance": list(self.attendance),
            "payouts": [p.to_dict() for p in self.payouts],
            "additional_req_pays": [p.to_dict() for p in self.additional_req_pays],
            "rate": self.rate,
        }

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "site_id": self.site_id,
            "empid": self.empid,
            "name": self.name,
            "month": self.month,
            "year": self.year,
            "rate": self.rate,
            "wage": self.wage,
            "attendance": list(self.attendance),
            "payouts": [p.to_dict() for p in self.payouts],
            "additional_req_pays": [p.to_dict() for p in self.additional_req_pays],
            "carry_forwarded": self.carry_forwarded.to_dict(),
            "closing_balance": self.closing_balance,
            "recalculation_needed": self.recalculation_needed,
            "modification_reason": self.modification_reason,
            "created_by": self.created_by,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EmployeeMonthRecord":
        return cls(
            site_id=str(data["site_id"]),
            empid=str(data["empid"]),
            name=str(data.get("name") or ""),
            month=int(data["month"]),
            year=int(data["year"]),
            rate=float(data.get("rate") or 0),
            attendance=tuple(data.get("attendance") or ()),
            payouts=to_payment_entries(data.get("payouts")),
            additional_req_pays=to_payment_entries(data.get("additional_req_pays")),
            carry_forwarded=CarryForward.from_dict(data.get("carry_forwarded")),
            wage=float(data.get("wage") or 0),
            closing_balance=float(data.get("closing_balance") or 0),
            recalculation_needed=bool(data.get("recalculation_needed", False)),
            modification_reason=data.get("modification_reason"),
            created_by=data.get("created_by"),
            version=int(data.get("version") or 0),
            record_id=data.get("record_id"),
        )

    def with_update(self, update: Mapping[str, Any], *, actor: Optional[str] = None) -> "EmployeeMonthRecord":
        """Apply a partial update.

        Tracked lists and rate are replaced wholesale, ``carry_forwarded`` is
        merged key by key. Derived fields (wage, closing_balance, the
        recalculation flag) and identity are never taken from the update.
        Payment lines without ``created_by`` are stamped with ``actor``.
        """
        changes: dict[str, Any] = {}
        if "attendance" in update:
            changes["attendance"] = tuple(update.get("attendance") or ())
        for name in ("payouts", "additional_req_pays"):
            if name in update:
                items = to_payment_entries(update.get(name))
                if actor:
                    items = tuple(p if p.created_by else replace(p, created_by=actor) for p in items)
                changes[name] = items
        if "rate" in update:
            changes["rate"] = float(update["rate"])
        if "name" in update and update["name"]:
            changes["name"] = str(update["name"]).strip()
        if "carry_forwarded" in update and isinstance(update["carry_forwarded"], Mapping):
            merged = {**self.carry_forwarded.to_dict(), **dict(update["carry_forwarded"])}
            changes["carry_forwarded"] = CarryForward.from_dict(merged)
        return replace(self, **changes)

    def with_legacy_fixes(self) -> "EmployeeMonthRecord":
        """Stamp payment lines that predate ``created_by`` tracking."""

        def fix(items: Sequence[PaymentEntry]) -> tuple[PaymentEntry, ...]:
            return tuple(p if p.created_by else replace(p, created_by=LEGACY_CREATED_BY) for p in items)

        return replace(self, payouts=fix(self.payouts), additional_req_pays=fix(self.additional_req_pays))


@dataclass(frozen=True)
class EmployeeWriteResult:
    """Outcome of a write that also tries to append to the change ledger.

    ``tracking_warning`` is set when the data write succeeded but the ledger
    write did not.
    """

    record: Optional[EmployeeMonthRecord]
    changes_written: int = 0
    later_months_marked: int = 0
    tracking_warning: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "record": self.record.to_dict() if self.record else None,
            "changes_written": self.changes_written,
            "later_months_marked": self.later_months_marked,
            "tracking_warning": self.tracking_warning,
        }


@dataclass(frozen=True)
class BatchResult:
    """Per-item outcome of a bulk operation."""

    succeeded: tuple[dict, ...] = ()
    failed: tuple[dict, ...] = ()

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "success_count": len(self.succeeded),
            "failure_count": len(self.failed),
            "succeeded": list(self.succeeded),
            "failed": list(self.failed),
        }
