"""Field-by-field diff of employee month snapshots.

Each tracked field is described by a ``FieldDescriptor`` and its ``FieldKind``
selects the comparator from a dispatch table:

* STRING_ARRAY (attendance): positional compare when lengths match, with a
  set based added/removed fallback when lengths differ or nothing was found.
* OBJECT_ARRAY (payouts, additional pays): items have no identity, so each is
  matched through a synthetic key built from its date, author, value and
  remark.
* NUMBER (rate): numeric difference and percentage change.

Missing fields are treated as empty. The engine never raises for bad data.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from ..attendance.codec import AttendanceCodec, DecodedAttendance
from ..common.datetime_utils import coerce_datetime, days_in_month, iso_day
from ..common.formatting import format_inr, format_number
from ..core.constants import SYNTHETIC_KEY_REMARK_LENGTH
from ..core.enums import ChangeType, Complexity, FieldKind, TrackedField, UpdateType
from .model import AtomicChange, FieldDescriptor

TRACKED_FIELDS: tuple[FieldDescriptor, ...] = (
    FieldDescriptor(TrackedField.ATTENDANCE, FieldKind.STRING_ARRAY, "Attendance"),
    FieldDescriptor(TrackedField.PAYOUTS, FieldKind.OBJECT_ARRAY, "Payouts"),
    FieldDescriptor(TrackedField.ADDITIONAL_REQ_PAYS, FieldKind.OBJECT_ARRAY, "Additional Payments"),
    FieldDescriptor(TrackedField.RATE, FieldKind.NUMBER, "Daily Rate"),
)

RECORD_FIELD = FieldDescriptor(TrackedField.RECORD, FieldKind.DOCUMENT, "Employee Record")

_COMPARED_ITEM_FIELDS = ("value", "remark", "date", "created_by")


def attendance_date_info(index: int, month: Optional[int], year: Optional[int]) -> Optional[dict]:
    """Calendar date for attendance position ``index`` (0 -> day 1)."""
    if not month or not year:
        return None
    day = index + 1
    if day < 1 or day > days_in_month(int(month), int(year)):
        return {"day": day, "month": int(month), "year": int(year), "is_valid": False}
    d = date(int(year), int(month), day)
    return {
        "day": day,
        "month": int(month),
        "year": int(year),
        "date": d.strftime("%d/%m/%Y"),
        "iso_date": d.isoformat(),
        "day_name": d.strftime("%A"),
        "is_valid": True,
    }


def _decoded_dict(decoded: DecodedAttendance) -> dict:
    return {
        "status": decoded.status.value,
        "overtime_hours": decoded.overtime_hours,
        "display": decoded.display,
    }


def _created_by(item: Mapping[str, Any]) -> Optional[str]:
    return item.get("created_by") or item.get("createdBy")


def synthetic_key(item: Mapping[str, Any]) -> str:
    """Identity for a payment line, most specific form first."""
    value = item.get("value")
    remark = str(item.get("remark") or "")[:SYNTHETIC_KEY_REMARK_LENGTH]
    raw_date = item.get("date")
    day = iso_day(raw_date) or (str(raw_date) if raw_date else None)
    author = _created_by(item)

    if day and author:
        return f"{day}_{author}_{format_number(value)}_{remark}"
    if value and remark and day:
        return f"{format_number(value)}_{remark}_{day}"
    if value and remark:
        return f"{format_number(value)}_{remark}"
    digest = hashlib.md5(json.dumps(dict(item), sort_keys=True, default=str).encode("utf-8")).hexdigest()
    return digest[:8]


def _keyed(items: Iterable[Mapping[str, Any]]) -> dict[str, Mapping[str, Any]]:
    # Identical lines get "#2", "#3"... so duplicates are still counted.
    out: dict[str, Mapping[str, Any]] = {}
    seen: dict[str, int] = {}
    for item in items:
        if not isinstance(item, Mapping):
            continue
        base = synthetic_key(item)
        seen[base] = seen.get(base, 0) + 1
        key = base if seen[base] == 1 else f"{base}#{seen[base]}"
        out[key] = item
    return out


def _item_field_text(item: Mapping[str, Any], name: str) -> str:
    if name == "value":
        return format_number(item.get("value"))
    if name == "created_by":
        return str(_created_by(item) or "")
    if name == "date":
        raw = item.get("date")
        dt = coerce_datetime(raw)
        if dt is not None:
            return dt.isoformat()
        return "" if raw is None else str(raw)
    return str(item.get(name) or "")


def _item_dict(item: Mapping[str, Any]) -> dict:
    return {
        "value": item.get("value"),
        "remark": item.get("remark") or "",
        "date": item.get("date"),
        "created_by": _created_by(item),
    }


def _item_summary(item: Mapping[str, Any]) -> str:
    day = iso_day(item.get("date"))
    shown_date = coerce_datetime(item.get("date")).strftime("%d/%m/%Y") if day else "No date"
    return f"{format_inr(item.get('value'))} - {item.get('remark') or 'No remark'} ({shown_date})"


def _to_number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


class ChangeDiffEngine:
    def __init__(self, fields: Sequence[FieldDescriptor] = TRACKED_FIELDS):
        self._fields = tuple(fields)
        self._comparators: dict[FieldKind, Callable[..., list[AtomicChange]]] = {
            FieldKind.STRING_ARRAY: self._diff_string_array,
            FieldKind.OBJECT_ARRAY: self._diff_object_array,
            FieldKind.NUMBER: self._diff_number,
        }

    @property
    def fields(self) -> tuple[FieldDescriptor, ...]:
        return self._fields

    def diff(
        self,
        old: Optional[Mapping[str, Any]],
        new: Optional[Mapping[str, Any]],
        *,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[AtomicChange]:
        old = old or {}
        new = new or {}
        changes: list[AtomicChange] = []
        for descriptor in self._fields:
            comparator = self._comparators.get(descriptor.kind)
            if comparator is None:
                continue
            changes.extend(
                comparator(descriptor, old.get(descriptor.name.value), new.get(descriptor.name.value), month=month, year=year)
            )
        return changes

    # -------- comparators --------
    def _diff_string_array(self, descriptor: FieldDescriptor, old: Any, new: Any, *, month, year) -> list[AtomicChange]:
        old_list = [_hashable(v) for v in old or []]
        new_list = [_hashable(v) for v in new or []]
        changes: list[AtomicChange] = []

        if len(old_list) == len(new_list):
            for i, (before, after) in enumerate(zip(old_list, new_list)):
                if before == after:
                    continue
                old_decoded = AttendanceCodec.decode(before)
                new_decoded = AttendanceCodec.decode(after)
                info = attendance_date_info(i, month, year)
                where = self._where(info, i, "on", "at position")
                changes.append(
                    AtomicChange(
                        field=descriptor.name,
                        field_display_name=descriptor.display_name,
                        field_kind=descriptor.kind,
                        change_type=ChangeType.MODIFIED,
                        description=(
                            f"Attendance changed {where}: "
                            f"{old_decoded.display} ({before}) → {new_decoded.display} ({after})"
                        ),
                        data={
                            "position": i,
                            "from": before,
                            "to": after,
                            "from_decoded": _decoded_dict(old_decoded),
                            "to_decoded": _decoded_dict(new_decoded),
                            "date_info": info,
                        },
                    )
                )

        if not changes or len(old_list) != len(new_list):
            old_set = set(old_list)
            new_set = set(new_list)
            for value in _unique(v for v in new_list if v not in old_set):
                changes.append(self._attendance_set_change(descriptor, ChangeType.ADDED, value, new_list.index(value), month, year))
            for value in _unique(v for v in old_list if v not in new_set):
                changes.append(self._attendance_set_change(descriptor, ChangeType.REMOVED, value, old_list.index(value), month, year))
        return changes

    def _attendance_set_change(self, descriptor, change_type, value, position, month, year) -> AtomicChange:
        decoded = AttendanceCodec.decode(value)
        info = attendance_date_info(position, month, year)
        if change_type == ChangeType.ADDED:
            description = f"Attendance added {self._where(info, position, 'on', 'at position')}: {decoded.display} ({value})"
        else:
            description = f"Attendance removed {self._where(info, position, 'from', 'from position')}: {decoded.display} ({value})"
        return AtomicChange(
            field=descriptor.name,
            field_display_name=descriptor.display_name,
            field_kind=descriptor.kind,
            change_type=change_type,
            description=description,
            data={
                "position": position,
                "item": value,
                "decoded": _decoded_dict(decoded),
                "date_info": info,
            },
        )

    @staticmethod
    def _where(info: Optional[dict], position: int, date_word: str, position_words: str) -> str:
        if info and info.get("is_valid"):
            return f"{date_word} {info['date']} ({info['day_name']})"
        return f"{position_words} {position + 1}"

    def _diff_object_array(self, descriptor: FieldDescriptor, old: Any, new: Any, *, month, year) -> list[AtomicChange]:
        old_map = _keyed(old or [])
        new_map = _keyed(new or [])
        changes: list[AtomicChange] = []
        label = descriptor.display_name

        for key, item in new_map.items():
            if key not in old_map:
                changes.append(
                    AtomicChange(
                        field=descriptor.name,
                        field_display_name=label,
                        field_kind=descriptor.kind,
                        change_type=ChangeType.ADDED,
                        description=f"New {label} added: {_item_summary(item)}",
                        data={"key": key, "item": _item_dict(item)},
                    )
                )

        for key, item in old_map.items():
            if key not in new_map:
                changes.append(
                    AtomicChange(
                        field=descriptor.name,
                        field_display_name=label,
                        field_kind=descriptor.kind,
                        change_type=ChangeType.REMOVED,
                        description=f"{label} removed: {_item_summary(item)}",
                        data={"key": key, "item": _item_dict(item)},
                    )
                )

        for key, new_item in new_map.items():
            old_item = old_map.get(key)
            if old_item is None:
                continue
            changed_fields = []
            for name in _COMPARED_ITEM_FIELDS:
                before = _item_field_text(old_item, name)
                after = _item_field_text(new_item, name)
                if before != after:
                    changed_fields.append({"field": name, "from": before, "to": after})
            if changed_fields:
                detail = ", ".join(f'{cf["field"]} changed from "{cf["from"]}" to "{cf["to"]}"' for cf in changed_fields)
                changes.append(
                    AtomicChange(
                        field=descriptor.name,
                        field_display_name=label,
                        field_kind=descriptor.kind,
                        change_type=ChangeType.MODIFIED,
                        description=f"{label} modified: {detail}",
                        data={
                            "key": key,
                            "item": _item_dict(new_item),
                            "from": _item_dict(old_item),
                            "to": _item_dict(new_item),
                            "changed_fields": changed_fields,
                        },
                    )
                )
        return changes

    def _diff_number(self, descriptor: FieldDescriptor, old: Any, new: Any, *, month, year) -> list[AtomicChange]:
        before = _to_number(old)
        after = _to_number(new)
        if before == after:
            return []
        difference = after - before
        percentage = f"{difference / before * 100:.2f}" if before != 0 else "N/A"
        sign = "+" if difference > 0 else ""
        pct_text = f", {sign}{percentage}%" if percentage != "N/A" else ""
        return [
            AtomicChange(
                field=descriptor.name,
                field_display_name=descriptor.display_name,
                field_kind=descriptor.kind,
                change_type=ChangeType.MODIFIED,
                description=(
                    f"{descriptor.display_name} changed from {format_inr(before)} to {format_inr(after)} "
                    f"({sign}{format_inr(difference)}{pct_text})"
                ),
                data={
                    "from": before,
                    "to": after,
                    "difference": difference,
                    "percentage_change": percentage,
                },
            )
        ]


def _hashable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float)):
        return value
    return json.dumps(value, sort_keys=True, default=str)


def _unique(values: Iterable[Any]) -> list[Any]:
    out: list[Any] = []
    for v in values:
        if v not in out:
            out.append(v)
    return out


def record_change(snapshot: Mapping[str, Any], change_type: ChangeType, *, description: str) -> AtomicChange:
    """Lifecycle entry (create, import, delete) carrying the whole record."""
    return AtomicChange(
        field=RECORD_FIELD.name,
        field_display_name=RECORD_FIELD.display_name,
        field_kind=RECORD_FIELD.kind,
        change_type=change_type,
        description=description,
        data={"snapshot": dict(snapshot)},
    )


@dataclass(frozen=True)
class ChangeAnalysis:
    fields_updated: tuple[str, ...]
    update_type: UpdateType
    complexity: Complexity
    attendance_changed: bool
    payments_changed: bool
    rate_changed: bool
    total_changes: int

    @property
    def has_changes(self) -> bool:
        return bool(self.fields_updated)

    def to_metadata(self) -> dict:
        return {
            "update_type": self.update_type.value,
            "complexity": self.complexity.value,
            "total_fields_updated": len(self.fields_updated),
            "fields_updated": ", ".join(self.fields_updated),
        }


def analyze_changes(
    old: Optional[Mapping[str, Any]],
    new: Optional[Mapping[str, Any]],
    fields: Sequence[FieldDescriptor] = TRACKED_FIELDS,
) -> ChangeAnalysis:
    """Classify an update by which tracked fields moved and roughly how much."""
    old = old or {}
    new = new or {}
    updated: list[str] = []
    total = 0
    attendance = payments = rate = False

    for descriptor in fields:
        name = descriptor.name.value
        before, after = old.get(name), new.get(name)
        if descriptor.kind == FieldKind.NUMBER:
            changed = _to_number(before) != _to_number(after)
        else:
            changed = json.dumps(before, sort_keys=True, default=str) != json.dumps(after, sort_keys=True, default=str)
        if not changed:
            continue

        updated.append(name)
        if descriptor.name == TrackedField.ATTENDANCE:
            attendance = True
        elif descriptor.name in (TrackedField.PAYOUTS, TrackedField.ADDITIONAL_REQ_PAYS):
            payments = True
        elif descriptor.name == TrackedField.RATE:
            rate = True

        if isinstance(before, (list, tuple)) and isinstance(after, (list, tuple)):
            total += max(len(before), len(after))
        else:
            total += 1

    if attendance and payments and rate:
        update_type = UpdateType.COMPREHENSIVE
    elif attendance and payments:
        update_type = UpdateType.MIXED
    elif attendance and rate:
        update_type = UpdateType.ATTENDANCE_RATE
    elif payments and rate:
        update_type = UpdateType.PAYMENTS_RATE
    elif attendance:
        update_type = UpdateType.ATTENDANCE_ONLY
    elif payments:
        update_type = UpdateType.PAYMENTS_ONLY
    elif rate:
        update_type = UpdateType.RATE_ONLY
    elif updated:
        update_type = UpdateType.OTHER
    else:
        update_type = UpdateType.UNKNOWN

    if total > 10:
        complexity = Complexity.HIGH
    elif total > 3:
        complexity = Complexity.MEDIUM
    else:
        complexity = Complexity.SIMPLE

    return ChangeAnalysis(
        fields_updated=tuple(updated),
        update_type=update_type,
        complexity=complexity,
        attendance_changed=attendance,
        payments_changed=payments,
        rate_changed=rate,
        total_changes=total,
    )
