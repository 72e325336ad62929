from __future__ import annotations

from enum import Enum


class AttendanceStatus(str, Enum):
    """Decoded status of a single day's attendance code."""

    PRESENT = "Present"
    ABSENT = "Absent"
    INVALID = "Invalid"


class CalculationPolicy(str, Enum):
    """How logged overtime hours are converted into equivalent days."""

    DEFAULT = "default"
    SPECIAL = "special"


class TrackedField(str, Enum):
    """Fields whose changes are written to the change ledger.

    RECORD is used for lifecycle entries (create, import, delete) that
    capture a whole month record.
    """

    ATTENDANCE = "attendance"
    PAYOUTS = "payouts"
    ADDITIONAL_REQ_PAYS = "additional_req_pays"
    RATE = "rate"
    RECORD = "record"


class FieldKind(str, Enum):
    STRING_ARRAY = "array_string"
    OBJECT_ARRAY = "array_object"
    NUMBER = "number"
    DOCUMENT = "document"


class ChangeType(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class UpdateType(str, Enum):
    ATTENDANCE_ONLY = "attendance-only"
    PAYMENTS_ONLY = "payments-only"
    RATE_ONLY = "rate-only"
    MIXED = "mixed"
    ATTENDANCE_RATE = "attendance-rate"
    PAYMENTS_RATE = "payments-rate"
    COMPREHENSIVE = "comprehensive"
    OTHER = "other"
    UNKNOWN = "unknown"


class Complexity(str, Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    HIGH = "high"
