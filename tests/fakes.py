from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional

from src.site_payroll.site_payroll.common.datetime_utils import is_later_period, period_key
from src.site_payroll.site_payroll.core.constants import EMPLOYEE_ID_PREFIX, SYSTEM_ACTOR
from src.site_payroll.site_payroll.core.enums import ChangeType
from src.site_payroll.site_payroll.core.exceptions import ConcurrentModificationError, ConflictError
from src.site_payroll.site_payroll.employees.model import CarryForward, EmployeeMonthRecord, format_employee_id
from src.site_payroll.site_payroll.tracking.model import ChangeLedgerEntry, LedgerFilters


def make_record(empid="EMP001", month=3, year=2024, **kwargs) -> EmployeeMonthRecord:
    data = {
        "site_id": "site-1",
        "empid": empid,
        "name": f"Worker {empid}",
        "month": month,
        "year": year,
        "rate": 500.0,
    }
    data.update(kwargs)
    if isinstance(data.get("carry_forwarded"), (int, float)):
        data["carry_forwarded"] = CarryForward(value=float(data["carry_forwarded"]))
    for name in ("attendance", "payouts", "additional_req_pays"):
        if isinstance(data.get(name), list):
            data[name] = tuple(data[name])
    return EmployeeMonthRecord(**data)


class InMemoryEmployees:
    """EmployeeRepository over a dict keyed by (site_id, empid, month, year)."""

    def __init__(self, records=()):
        self._rows: dict[tuple, EmployeeMonthRecord] = {}
        self._id = 0
        self._serial: Optional[int] = None
        self.saved: list[EmployeeMonthRecord] = []
        for record in records:
            self.seed(record)

    def seed(self, record: EmployeeMonthRecord) -> EmployeeMonthRecord:
        self._id += 1
        stored = replace(record, record_id=self._id, version=record.version or 1)
        self._rows[stored.key] = stored
        return stored

    def all(self) -> list[EmployeeMonthRecord]:
        return self._sorted(self._rows.values())

    @staticmethod
    def _sorted(records) -> list[EmployeeMonthRecord]:
        return sorted(records, key=lambda r: (r.site_id, r.empid, period_key(r.month, r.year)))

    def get(self, *, site_id, empid, month, year):
        return self._rows.get((site_id, empid, int(month), int(year)))

    def insert(self, record):
        if record.key in self._rows:
            raise ConflictError(f"Duplicate record for {record.empid}", conflicting_ids=[record.empid])
        self._id += 1
        stored = replace(
            record,
            record_id=self._id,
            version=1,
            created_by=record.created_by or SYSTEM_ACTOR,
            created_at=datetime(2024, 1, 1, 9, 0),
        )
        self._rows[stored.key] = stored
        return stored

    def save(self, record, *, expected_version):
        current = self._rows.get(record.key)
        if current is None or current.version != expected_version:
            raise ConcurrentModificationError(f"{record.empid} {record.month:02d}/{record.year} was modified concurrently")
        stored = replace(record, record_id=current.record_id, version=current.version + 1)
        self._rows[stored.key] = stored
        self.saved.append(stored)
        return stored

    def delete(self, *, site_id, empid, month, year):
        return self._rows.pop((site_id, empid, int(month), int(year)), None) is not None

    def delete_all(self, *, site_id, empid):
        keys = [k for k in self._rows if k[0] == site_id and k[1] == empid]
        for key in keys:
            del self._rows[key]
        return len(keys)

    def list_for_employee(self, *, site_id, empid):
        return self._sorted(r for r in self._rows.values() if r.site_id == site_id and r.empid == empid)

    def list_for_period(self, *, site_id, month, year, empids=None):
        wanted = set(empids) if empids is not None else None
        rows = [
            r
            for r in self._rows.values()
            if r.site_id == site_id and r.month == int(month) and r.year == int(year)
            and (wanted is None or r.empid in wanted)
        ]
        return sorted(rows, key=lambda r: r.empid)

    def insert_new_employee(self, draft):
        if self._serial is None:
            self._serial = 0
            for record in self._rows.values():
                suffix = record.empid[len(EMPLOYEE_ID_PREFIX):]
                if record.empid.startswith(EMPLOYEE_ID_PREFIX) and suffix.isdigit():
                    self._serial = max(self._serial, int(suffix))
        self._serial += 1
        return self.insert(replace(draft, empid=format_employee_id(self._serial)))

    def _flag(self, record, reason):
        flagged = replace(record, recalculation_needed=True, modification_reason=reason, version=record.version + 1)
        self._rows[record.key] = flagged

    def mark_later_months_dirty(self, *, site_id, empid, month, year, reason):
        count = 0
        for record in list(self._rows.values()):
            if record.site_id == site_id and record.empid == empid and is_later_period(
                record.month, record.year, than_month=month, than_year=year
            ):
                self._flag(record, reason)
                count += 1
        return count

    def mark_dirty(self, *, site_id, reason, empid=None, from_month=None, from_year=None):
        count = 0
        for record in list(self._rows.values()):
            if record.site_id != site_id or (empid and record.empid != empid):
                continue
            if from_month is not None and period_key(record.month, record.year) < period_key(from_month, from_year):
                continue
            self._flag(record, reason)
            count += 1
        return count

    def find_oldest_dirty(self, *, site_id, empid):
        dirty = [r for r in self.list_for_employee(site_id=site_id, empid=empid) if r.recalculation_needed]
        return dirty[0] if dirty else None

    def find_latest_before(self, *, site_id, empid, month, year):
        earlier = [
            r
            for r in self.list_for_employee(site_id=site_id, empid=empid)
            if period_key(r.month, r.year) < period_key(month, year)
        ]
        return earlier[-1] if earlier else None

    def list_dirty(self, *, site_id=None, empid=None, limit=None, offset=0):
        rows = [
            r
            for r in self.all()
            if r.recalculation_needed and (site_id is None or r.site_id == site_id) and (empid is None or r.empid == empid)
        ]
        rows = rows[offset:]
        return rows[:limit] if limit is not None else rows

    def count_dirty(self, *, site_id=None, empid=None):
        return len(self.list_dirty(site_id=site_id, empid=empid))


class InMemoryLedger:
    """ChangeLedgerRepository backed by a list. ``fail=True`` makes writes raise."""

    def __init__(self, *, fail: bool = False):
        self.entries: list[ChangeLedgerEntry] = []
        self.fail = fail
        self._id = 0

    def append_many(self, entries):
        if self.fail:
            raise RuntimeError("ledger store unavailable")
        for entry in entries:
            self._id += 1
            self.entries.append(replace(entry, entry_id=self._id))
        return len(entries)

    @staticmethod
    def _matches(entry: ChangeLedgerEntry, f: LedgerFilters) -> bool:
        checks = (
            (f.site_id, entry.site_id),
            (f.employee_id, entry.employee_id),
            (f.field, entry.field),
            (f.change_type, entry.change_type),
            (f.changed_by, entry.changed_by),
            (f.month, entry.month),
            (f.year, entry.year),
        )
        if any(wanted is not None and wanted != actual for wanted, actual in checks):
            return False
        if f.start is not None and entry.timestamp < _aware(f.start):
            return False
        if f.end is not None and entry.timestamp > _aware(f.end):
            return False
        return True

    def _filtered(self, filters):
        return [e for e in self.entries if self._matches(e, filters)]

    def query(self, filters, *, limit, offset=0, descending=True):
        rows = sorted(self._filtered(filters), key=lambda e: (e.timestamp, e.entry_id), reverse=descending)
        return rows[offset:offset + limit]

    def count(self, filters):
        return len(self._filtered(filters))

    def statistics(self, filters):
        grouped: dict = defaultdict(list)
        for entry in self._filtered(filters):
            grouped[entry.field.value].append(entry)
        rows = []
        for field_name, entries in sorted(grouped.items()):
            rows.append(
                {
                    "field": field_name,
                    "total": len(entries),
                    "added": sum(1 for e in entries if e.change_type == ChangeType.ADDED),
                    "removed": sum(1 for e in entries if e.change_type == ChangeType.REMOVED),
                    "modified": sum(1 for e in entries if e.change_type == ChangeType.MODIFIED),
                    "unique_employees": len({(e.site_id, e.employee_id) for e in entries}),
                    "last_change": max(e.timestamp for e in entries),
                }
            )
        return rows


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class TickingClock:
    """UTC clock advancing one minute per call."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 3, 15, 4, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self._now
        self._now = current + timedelta(minutes=1)
        return current
