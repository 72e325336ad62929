from __future__ import annotations

from dataclasses import replace
from typing import Any, Optional, Sequence

from mysql.connector import errors as mysql_errors

from ..core.constants import EMPLOYEE_ID_PREFIX, SYSTEM_ACTOR
from ..core.exceptions import ConcurrentModificationError, ConflictError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, from_json, to_json
from .model import CarryForward, EmployeeMonthRecord, format_employee_id, to_payment_entries
from .repository import EmployeeRepository

_COLUMNS = """
    record_id, site_id, empid, name, month, year, rate, wage,
    attendance, payouts, additional_req_pays, carry_forwarded,
    closing_balance, recalculation_needed, modification_reason,
    created_by, version, created_at, updated_at
"""

_PERIOD_ORDER = "ORDER BY year ASC, month ASC"


def _row_to_record(r: dict[str, Any]) -> EmployeeMonthRecord:
    return EmployeeMonthRecord(
        record_id=int(r["record_id"]),
        site_id=r["site_id"],
        empid=r["empid"],
        name=r["name"],
        month=int(r["month"]),
        year=int(r["year"]),
        rate=float(r["rate"]),
        wage=float(r["wage"]),
        attendance=tuple(from_json(r.get("attendance"), [])),
        payouts=to_payment_entries(from_json(r.get("payouts"), [])),
        additional_req_pays=to_payment_entries(from_json(r.get("additional_req_pays"), [])),
        carry_forwarded=CarryForward.from_dict(from_json(r.get("carry_forwarded"), {})),
        closing_balance=float(r["closing_balance"]),
        recalculation_needed=bool(r["recalculation_needed"]),
        modification_reason=r.get("modification_reason"),
        created_by=r.get("created_by"),
        version=int(r["version"]),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
    )


def _payload(record: EmployeeMonthRecord) -> tuple:
    return (
        record.name,
        float(record.rate),
        float(record.wage),
        to_json(list(record.attendance)),
        to_json([p.to_dict() for p in record.payouts]),
        to_json([p.to_dict() for p in record.additional_req_pays]),
        to_json(record.carry_forwarded.to_dict()),
        float(record.closing_balance),
        1 if record.recalculation_needed else 0,
        record.modification_reason,
    )


class MySQLEmployeeRepository(EmployeeRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, *, site_id: str, empid: str, month: int, year: int) -> Optional[EmployeeMonthRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM employee_months
                WHERE site_id=%s AND empid=%s AND month=%s AND year=%s
                """,
                (site_id, empid, int(month), int(year)),
            )
            r = fetchone(cur)
            return _row_to_record(r) if r else None

    def _insert_row(self, cur, record: EmployeeMonthRecord) -> None:
        cur.execute(
            """
            INSERT INTO employee_months(
                name, rate, wage, attendance, payouts, additional_req_pays,
                carry_forwarded, closing_balance, recalculation_needed, modification_reason,
                site_id, empid, month, year, created_by, version
            )
            VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,1)
            """,
            _payload(record)
            + (
                record.site_id,
                record.empid,
                int(record.month),
                int(record.year),
                record.created_by or SYSTEM_ACTOR,
            ),
        )

    def insert(self, record: EmployeeMonthRecord) -> EmployeeMonthRecord:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                self._insert_row(cur, record)
        except mysql_errors.IntegrityError as exc:
            raise ConflictError(
                f"Employee {record.empid} already exists for {record.month:02d}/{record.year}",
                conflicting_ids=[record.empid],
            ) from exc
        return self.get(site_id=record.site_id, empid=record.empid, month=record.month, year=record.year) or record

    def insert_new_employee(self, draft: EmployeeMonthRecord) -> EmployeeMonthRecord:
        offset = len(EMPLOYEE_ID_PREFIX) + 1
        record = draft
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                # First use seeds the counter from ids already on file.
                cur.execute(
                    """
                    INSERT IGNORE INTO employee_counters(name, value)
                    SELECT %s, COALESCE(MAX(CAST(SUBSTRING(empid, %s) AS UNSIGNED)), 0)
                    FROM employee_months
                    WHERE empid LIKE %s AND SUBSTRING(empid, %s) REGEXP '^[0-9]+$'
                    """,
                    (EMPLOYEE_ID_PREFIX, offset, f"{EMPLOYEE_ID_PREFIX}%", offset),
                )
                # The counter row stays locked until commit, so concurrent creates queue here.
                cur.execute(
                    "UPDATE employee_counters SET value = LAST_INSERT_ID(value + 1) WHERE name=%s",
                    (EMPLOYEE_ID_PREFIX,),
                )
                cur.execute("SELECT LAST_INSERT_ID() AS serial")
                r = fetchone(cur)
                record = replace(draft, empid=format_employee_id(int(r["serial"])))
                self._insert_row(cur, record)
        except mysql_errors.IntegrityError as exc:
            raise ConflictError(
                f"Employee {record.empid} already exists for {record.month:02d}/{record.year}",
                conflicting_ids=[record.empid],
            ) from exc
        return self.get(site_id=record.site_id, empid=record.empid, month=record.month, year=record.year) or record

    def save(self, record: EmployeeMonthRecord, *, expected_version: int) -> EmployeeMonthRecord:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE employee_months
                SET name=%s, rate=%s, wage=%s, attendance=%s, payouts=%s, additional_req_pays=%s,
                    carry_forwarded=%s, closing_balance=%s, recalculation_needed=%s, modification_reason=%s,
                    version=version+1
                WHERE site_id=%s AND empid=%s AND month=%s AND year=%s AND version=%s
                """,
                _payload(record)
                + (record.site_id, record.empid, int(record.month), int(record.year), int(expected_version)),
            )
            if cur.rowcount == 0:
                raise ConcurrentModificationError(
                    f"Record {record.empid} {record.month:02d}/{record.year} was modified concurrently; reload and retry"
                )
        saved = self.get(site_id=record.site_id, empid=record.empid, month=record.month, year=record.year)
        return saved or record

    def delete(self, *, site_id: str, empid: str, month: int, year: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "DELETE FROM employee_months WHERE site_id=%s AND empid=%s AND month=%s AND year=%s",
                (site_id, empid, int(month), int(year)),
            )
            return cur.rowcount > 0

    def delete_all(self, *, site_id: str, empid: str) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM employee_months WHERE site_id=%s AND empid=%s", (site_id, empid))
            return int(cur.rowcount)

    def list_for_employee(self, *, site_id: str, empid: str) -> Sequence[EmployeeMonthRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM employee_months WHERE site_id=%s AND empid=%s {_PERIOD_ORDER}",
                (site_id, empid),
            )
            return [_row_to_record(r) for r in fetchall(cur)]

    def list_for_period(
        self,
        *,
        site_id: str,
        month: int,
        year: int,
        empids: Optional[Sequence[str]] = None,
    ) -> Sequence[EmployeeMonthRecord]:
        clauses = ["site_id=%s", "month=%s", "year=%s"]
        params: list[object] = [site_id, int(month), int(year)]
        if empids:
            clauses.append("empid IN (" + ",".join(["%s"] * len(empids)) + ")")
            params.extend(empids)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM employee_months WHERE {' AND '.join(clauses)} ORDER BY empid ASC",
                tuple(params),
            )
            return [_row_to_record(r) for r in fetchall(cur)]

    def mark_later_months_dirty(self, *, site_id: str, empid: str, month: int, year: int, reason: str) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE employee_months
                SET recalculation_needed=1, modification_reason=%s, version=version+1
                WHERE site_id=%s AND empid=%s
                  AND (year > %s OR (year = %s AND month > %s))
                """,
                (reason, site_id, empid, int(year), int(year), int(month)),
            )
            return int(cur.rowcount)

    def mark_dirty(
        self,
        *,
        site_id: str,
        reason: str,
        empid: Optional[str] = None,
        from_month: Optional[int] = None,
        from_year: Optional[int] = None,
    ) -> int:
        clauses = ["site_id=%s"]
        params: list[object] = [site_id]
        if empid:
            clauses.append("empid=%s")
            params.append(empid)
        if from_month is not None and from_year is not None:
            clauses.append("(year > %s OR (year = %s AND month >= %s))")
            params.extend([int(from_year), int(from_year), int(from_month)])

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                UPDATE employee_months
                SET recalculation_needed=1, modification_reason=%s, version=version+1
                WHERE {' AND '.join(clauses)}
                """,
                tuple([reason] + params),
            )
            return int(cur.rowcount)

    def find_oldest_dirty(self, *, site_id: str, empid: str) -> Optional[EmployeeMonthRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM employee_months
                WHERE site_id=%s AND empid=%s AND recalculation_needed=1
                {_PERIOD_ORDER}
                LIMIT 1
                """,
                (site_id, empid),
            )
            r = fetchone(cur)
            return _row_to_record(r) if r else None

    def find_latest_before(self, *, site_id: str, empid: str, month: int, year: int) -> Optional[EmployeeMonthRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM employee_months
                WHERE site_id=%s AND empid=%s
                  AND (year < %s OR (year = %s AND month < %s))
                ORDER BY year DESC, month DESC
                LIMIT 1
                """,
                (site_id, empid, int(year), int(year), int(month)),
            )
            r = fetchone(cur)
            return _row_to_record(r) if r else None

    def list_dirty(
        self,
        *,
        site_id: Optional[str] = None,
        empid: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Sequence[EmployeeMonthRecord]:
        clauses = ["recalculation_needed=1"]
        params: list[object] = []
        if site_id:
            clauses.append("site_id=%s")
            params.append(site_id)
        if empid:
            clauses.append("empid=%s")
            params.append(empid)

        sql = f"""
            SELECT {_COLUMNS}
            FROM employee_months
            WHERE {' AND '.join(clauses)}
            ORDER BY site_id ASC, empid ASC, year ASC, month ASC
        """
        if limit is not None:
            sql += " LIMIT %s OFFSET %s"
            params.extend([int(limit), int(offset)])

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [_row_to_record(r) for r in fetchall(cur)]

    def count_dirty(self, *, site_id: Optional[str] = None, empid: Optional[str] = None) -> int:
        clauses = ["recalculation_needed=1"]
        params: list[object] = []
        if site_id:
            clauses.append("site_id=%s")
            params.append(site_id)
        if empid:
            clauses.append("empid=%s")
            params.append(empid)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT COUNT(*) AS total FROM employee_months WHERE {' AND '.join(clauses)}",
                tuple(params),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0
