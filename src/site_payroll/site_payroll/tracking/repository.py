from __future__ import annotations

from typing import Protocol, Sequence

from .model import ChangeLedgerEntry, LedgerFilters


class ChangeLedgerRepository(Protocol):
    """Append-only store. There is deliberately no update or delete."""

    def append_many(self, entries: Sequence[ChangeLedgerEntry]) -> int:
        raise NotImplementedError

    def query(
        self,
        filters: LedgerFilters,
        *,
        limit: int,
        offset: int = 0,
        descending: bool = True,
    ) -> Sequence[ChangeLedgerEntry]:
        raise NotImplementedError

    def count(self, filters: LedgerFilters) -> int:
        raise NotImplementedError

    def statistics(self, filters: LedgerFilters) -> Sequence[dict]:
        """One row per field: {field, total, added, removed, modified, unique_employees, last_change}."""

        raise NotImplementedError
