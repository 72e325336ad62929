from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import EmployeeMonthRecord


class EmployeeRepository(Protocol):
    def get(self, *, site_id: str, empid: str, month: int, year: int) -> Optional[EmployeeMonthRecord]:
        raise NotImplementedError

    def insert(self, record: EmployeeMonthRecord) -> EmployeeMonthRecord:
        """Insert a new month record; returns it with record_id and version=1."""

        raise NotImplementedError

    def insert_new_employee(self, draft: EmployeeMonthRecord) -> EmployeeMonthRecord:
        """Assign the next employee id to ``draft`` and insert it in one transaction.

        Ids come from a counter and are never handed out twice, even to
        concurrent callers at different sites or after the holder is deleted.
        """

        raise NotImplementedError

    def save(self, record: EmployeeMonthRecord, *, expected_version: int) -> EmployeeMonthRecord:
        """Overwrite a record if its stored version still equals ``expected_version``.

        Raises ConcurrentModificationError otherwise.
        """

        raise NotImplementedError

    def delete(self, *, site_id: str, empid: str, month: int, year: int) -> bool:
        raise NotImplementedError

    def delete_all(self, *, site_id: str, empid: str) -> int:
        raise NotImplementedError

    def list_for_employee(self, *, site_id: str, empid: str) -> Sequence[EmployeeMonthRecord]:
        """All months of one employee, oldest first."""

        raise NotImplementedError

    def list_for_period(
        self,
        *,
        site_id: str,
        month: int,
        year: int,
        empids: Optional[Sequence[str]] = None,
    ) -> Sequence[EmployeeMonthRecord]:
        raise NotImplementedError

    # Recalculation bookkeeping
    def mark_later_months_dirty(self, *, site_id: str, empid: str, month: int, year: int, reason: str) -> int:
        """Flag every strictly later month of the employee; returns rows flagged."""

        raise NotImplementedError

    def mark_dirty(
        self,
        *,
        site_id: str,
        reason: str,
        empid: Optional[str] = None,
        from_month: Optional[int] = None,
        from_year: Optional[int] = None,
    ) -> int:
        """Flag records from (from_month, from_year) inclusive, or all when no period is given."""

        raise NotImplementedError

    def find_oldest_dirty(self, *, site_id: str, empid: str) -> Optional[EmployeeMonthRecord]:
        raise NotImplementedError

    def find_latest_before(self, *, site_id: str, empid: str, month: int, year: int) -> Optional[EmployeeMonthRecord]:
        """Most recent record strictly earlier than (month, year)."""

        raise NotImplementedError

    def list_dirty(
        self,
        *,
        site_id: Optional[str] = None,
        empid: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Sequence[EmployeeMonthRecord]:
        """Dirty records ordered by site, employee, then period."""

        raise NotImplementedError

    def count_dirty(self, *, site_id: Optional[str] = None, empid: Optional[str] = None) -> int:
        raise NotImplementedError
