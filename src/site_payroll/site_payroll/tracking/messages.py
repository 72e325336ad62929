"""Human readable audit lines for ledger entries."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from ..common.formatting import format_inr
from ..core.constants import DEFAULT_DISPLAY_TIMEZONE
from ..core.enums import ChangeType, FieldKind
from .model import AtomicChange


def display_time(timestamp: datetime, tz_name: str = DEFAULT_DISPLAY_TIMEZONE) -> str:
    """Naive timestamps are taken as UTC."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(ZoneInfo(tz_name)).strftime("%d/%m/%Y, %I:%M:%S %p")


def _where(change: AtomicChange, date_word: str, position_word: str) -> str:
    info = change.data.get("date_info") or {}
    if info.get("is_valid"):
        return f" {date_word} {info['date']} ({info['day_name']})"
    return f" {position_word} {int(change.data.get('position') or 0) + 1}"


def display_message(
    change: AtomicChange,
    *,
    employee_id: str,
    month: int,
    year: int,
    changed_by: str,
    timestamp: datetime,
    tz_name: str = DEFAULT_DISPLAY_TIMEZONE,
) -> str:
    when = display_time(timestamp, tz_name)
    period = f"{month}/{year}"
    label = change.field_display_name
    data = change.data

    if change.field_kind == FieldKind.STRING_ARRAY:
        if change.change_type == ChangeType.ADDED:
            return (
                f"{changed_by} marked {employee_id} as {data['decoded']['display']} ({data['item']})"
                f"{_where(change, 'on', 'at position')} for {period} at {when}"
            )
        if change.change_type == ChangeType.REMOVED:
            return (
                f"{changed_by} removed {employee_id}'s {data['decoded']['display']} ({data['item']})"
                f"{_where(change, 'from', 'from position')} for {period} at {when}"
            )
        return (
            f"{changed_by} changed {employee_id}'s attendance from {data['from_decoded']['display']} "
            f"to {data['to_decoded']['display']}{_where(change, 'on', 'at position')} for {period} at {when}"
        )

    if change.field_kind == FieldKind.NUMBER:
        difference = float(data.get("difference") or 0)
        direction = "increased" if difference > 0 else "decreased"
        pct = data.get("percentage_change")
        pct_text = f" ({abs(float(pct))}%)" if pct not in (None, "N/A") else ""
        return (
            f"{changed_by} {direction} {employee_id}'s {label.lower()} from {format_inr(data.get('from'))} "
            f"to {format_inr(data.get('to'))} by {format_inr(abs(difference))}{pct_text} for {period} at {when}"
        )

    if change.field_kind == FieldKind.OBJECT_ARRAY:
        item = data.get("item") or {}
        line = f"{format_inr(item.get('value'))} - {item.get('remark') or 'No remark'}"
        if change.change_type == ChangeType.ADDED:
            return f"{changed_by} added {label.lower()} for {employee_id} ({period}): {line} at {when}"
        if change.change_type == ChangeType.REMOVED:
            return f"{changed_by} removed {label.lower()} for {employee_id} ({period}): {line} at {when}"
        fields = ", ".join(f'{cf["field"]}: "{cf["from"]}" → "{cf["to"]}"' for cf in data.get("changed_fields") or [])
        return f"{changed_by} modified {label.lower()} for {employee_id} ({period}): {fields or 'multiple fields'} at {when}"

    if change.field_kind == FieldKind.DOCUMENT:
        verb = {ChangeType.ADDED: "created", ChangeType.REMOVED: "deleted"}.get(change.change_type, "updated")
        return f"{changed_by} {verb} the record of {employee_id} for {period} at {when}"

    return f"{changed_by} changed {label.lower()} for {employee_id} ({period}) at {when}"
