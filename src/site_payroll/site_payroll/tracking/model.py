from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..core.enums import ChangeType, FieldKind, TrackedField


@dataclass(frozen=True)
class FieldDescriptor:
    name: TrackedField
    kind: FieldKind
    display_name: str


@dataclass(frozen=True)
class AtomicChange:
    """A single detected change to one tracked field of one month record."""

    field: TrackedField
    field_display_name: str
    field_kind: FieldKind
    change_type: ChangeType
    description: str
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ChangeContext:
    site_id: str
    employee_id: str
    month: int
    year: int
    changed_by: str
    remark: str = ""
    extra: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ChangeLedgerEntry:
    site_id: str
    employee_id: str
    month: int
    year: int
    field: TrackedField
    field_display_name: str
    field_type: FieldKind
    change_type: ChangeType
    change_description: str
    change_data: dict
    changed_by: str
    remark: str
    timestamp: datetime
    metadata: dict = field(default_factory=dict)
    entry_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "site_id": self.site_id,
            "employee_id": self.employee_id,
            "month": self.month,
            "year": self.year,
            "field": self.field.value,
            "field_display_name": self.field_display_name,
            "field_type": self.field_type.value,
            "change_type": self.change_type.value,
            "change_description": self.change_description,
            "change_data": self.change_data,
            "changed_by": self.changed_by,
            "remark": self.remark,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class LedgerFilters:
    site_id: Optional[str] = None
    employee_id: Optional[str] = None
    field: Optional[TrackedField] = None
    change_type: Optional[ChangeType] = None
    changed_by: Optional[str] = None
    month: Optional[int] = None
    year: Optional[int] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass(frozen=True)
class LedgerPage:
    entries: list[ChangeLedgerEntry]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "pagination": {
                "page": self.page,
                "page_size": self.page_size,
                "total": self.total,
                "total_pages": self.total_pages,
                "has_next": self.has_next,
                "has_prev": self.page > 1,
            },
        }
