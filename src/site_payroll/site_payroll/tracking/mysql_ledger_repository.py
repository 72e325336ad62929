from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence

from ..core.enums import ChangeType, FieldKind, TrackedField
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, from_json, to_json
from .model import ChangeLedgerEntry, LedgerFilters
from .repository import ChangeLedgerRepository

_COLUMNS = """
    entry_id, site_id, employee_id, month, year, field, field_display_name,
    field_type, change_type, change_description, change_data, changed_by,
    remark, timestamp, metadata
"""


def _where(filters: LedgerFilters) -> tuple[str, list[object]]:
    clauses = ["1=1"]
    params: list[object] = []
    if filters.site_id:
        clauses.append("site_id=%s")
        params.append(filters.site_id)
    if filters.employee_id:
        clauses.append("employee_id=%s")
        params.append(filters.employee_id)
    if filters.field is not None:
        clauses.append("field=%s")
        params.append(filters.field.value)
    if filters.change_type is not None:
        clauses.append("change_type=%s")
        params.append(filters.change_type.value)
    if filters.changed_by:
        clauses.append("changed_by=%s")
        params.append(filters.changed_by)
    if filters.month is not None:
        clauses.append("month=%s")
        params.append(int(filters.month))
    if filters.year is not None:
        clauses.append("year=%s")
        params.append(int(filters.year))
    if filters.start is not None:
        clauses.append("timestamp >= %s")
        params.append(_utc_naive(filters.start))
    if filters.end is not None:
        clauses.append("timestamp <= %s")
        params.append(_utc_naive(filters.end))
    return " AND ".join(clauses), params


def _utc_naive(ts: datetime) -> datetime:
    # DATETIME columns hold UTC without tzinfo.
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def _row_to_entry(r: dict[str, Any]) -> ChangeLedgerEntry:
    return ChangeLedgerEntry(
        entry_id=int(r["entry_id"]),
        site_id=r["site_id"],
        employee_id=r["employee_id"],
        month=int(r["month"]),
        year=int(r["year"]),
        field=TrackedField(r["field"]),
        field_display_name=r["field_display_name"],
        field_type=FieldKind(r["field_type"]),
        change_type=ChangeType(r["change_type"]),
        change_description=r["change_description"],
        change_data=from_json(r.get("change_data"), {}),
        changed_by=r["changed_by"],
        remark=r.get("remark") or "",
        timestamp=r["timestamp"].replace(tzinfo=timezone.utc),
        metadata=from_json(r.get("metadata"), {}),
    )


class MySQLChangeLedgerRepository(ChangeLedgerRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def append_many(self, entries: Sequence[ChangeLedgerEntry]) -> int:
        if not entries:
            return 0
        rows = [
            (
                e.site_id,
                e.employee_id,
                int(e.month),
                int(e.year),
                e.field.value,
                e.field_display_name,
                e.field_type.value,
                e.change_type.value,
                e.change_description,
                to_json(e.change_data),
                e.changed_by,
                e.remark,
                _utc_naive(e.timestamp),
                to_json(e.metadata),
            )
            for e in entries
        ]
        with db_cursor(self._conn_factory) as (_, cur):
            cur.executemany(
                """
                INSERT INTO change_ledger(
                    site_id, employee_id, month, year, field, field_display_name,
                    field_type, change_type, change_description, change_data,
                    changed_by, remark, timestamp, metadata
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                rows,
            )
        return len(rows)

    def query(
        self,
        filters: LedgerFilters,
        *,
        limit: int,
        offset: int = 0,
        descending: bool = True,
    ) -> Sequence[ChangeLedgerEntry]:
        where, params = _where(filters)
        direction = "DESC" if descending else "ASC"
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM change_ledger
                WHERE {where}
                ORDER BY timestamp {direction}, entry_id {direction}
                LIMIT %s OFFSET %s
                """,
                tuple(params + [int(limit), int(offset)]),
            )
            return [_row_to_entry(r) for r in fetchall(cur)]

    def count(self, filters: LedgerFilters) -> int:
        where, params = _where(filters)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS total FROM change_ledger WHERE {where}", tuple(params))
            r = fetchone(cur)
            return int(r["total"]) if r else 0

    def statistics(self, filters: LedgerFilters) -> Sequence[dict]:
        where, params = _where(filters)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT field,
                       COUNT(*) AS total,
                       SUM(change_type = %s) AS added,
                       SUM(change_type = %s) AS removed,
                       SUM(change_type = %s) AS modified,
                       COUNT(DISTINCT employee_id) AS unique_employees,
                       MAX(timestamp) AS last_change
                FROM change_ledger
                WHERE {where}
                GROUP BY field
                ORDER BY field ASC
                """,
                tuple([ChangeType.ADDED.value, ChangeType.REMOVED.value, ChangeType.MODIFIED.value] + params),
            )
            return [
                {
                    "field": r["field"],
                    "total": int(r["total"]),
                    "added": int(r["added"] or 0),
                    "removed": int(r["removed"] or 0),
                    "modified": int(r["modified"] or 0),
                    "unique_employees": int(r["unique_employees"]),
                    "last_change": r.get("last_change"),
                }
                for r in fetchall(cur)
            ]
