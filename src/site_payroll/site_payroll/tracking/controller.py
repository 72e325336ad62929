from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import Flask, jsonify, request

from ..common.datetime_utils import coerce_datetime
from ..common.http import int_arg
from ..container import Container
from ..core.constants import DEFAULT_LEDGER_PAGE_SIZE
from ..core.enums import ChangeType, TrackedField
from ..core.exceptions import ValidationError
from .model import LedgerFilters


def _enum_arg(name: str, enum_cls):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return enum_cls(raw)
    except ValueError:
        raise ValidationError(f"Invalid {name}: {raw}")


def _datetime_arg(name: str) -> Optional[datetime]:
    raw = request.args.get(name)
    if not raw:
        return None
    value = coerce_datetime(raw)
    if value is None:
        raise ValidationError(f"{name} must be an ISO date or datetime")
    return value


def register(app: Flask, container: Container) -> None:
    ledger = container.change_ledger

    @app.route("/api/change-ledger", methods=["GET"], endpoint="query_change_ledger")
    def query_change_ledger():
        filters = LedgerFilters(
            site_id=request.args.get("site_id") or None,
            employee_id=request.args.get("employee_id") or None,
            field=_enum_arg("field", TrackedField),
            change_type=_enum_arg("change_type", ChangeType),
            changed_by=request.args.get("changed_by") or None,
            month=int_arg("month"),
            year=int_arg("year"),
            start=_datetime_arg("start"),
            end=_datetime_arg("end"),
        )
        page = ledger.query(
            filters,
            page=int_arg("page", 1),
            page_size=int_arg("page_size", DEFAULT_LEDGER_PAGE_SIZE),
            descending=request.args.get("sort", "desc").lower() != "asc",
        )
        return jsonify({"success": True, **page.to_dict()})

    @app.route(
        "/api/change-ledger/sites/<site_id>/employees/<employee_id>/fields/<field>",
        methods=["GET"],
        endpoint="field_change_history",
    )
    def field_change_history(site_id: str, employee_id: str, field: str):
        try:
            tracked = TrackedField(field)
        except ValueError:
            raise ValidationError(f"Invalid field: {field}")
        page = ledger.field_history(
            site_id=site_id,
            employee_id=employee_id,
            field=tracked,
            page=int_arg("page", 1),
            page_size=int_arg("page_size", DEFAULT_LEDGER_PAGE_SIZE),
            start=_datetime_arg("start"),
            end=_datetime_arg("end"),
        )
        return jsonify({"success": True, **page.to_dict()})

    @app.route("/api/change-ledger/statistics", methods=["GET"], endpoint="change_ledger_statistics")
    def change_ledger_statistics():
        stats = ledger.statistics(
            site_id=request.args.get("site_id") or None,
            field=_enum_arg("field", TrackedField),
            start=_datetime_arg("start"),
            end=_datetime_arg("end"),
        )
        return jsonify({"success": True, "statistics": stats})

    @app.route("/api/change-ledger/recent", methods=["GET"], endpoint="recent_changes")
    def recent_changes():
        entries = ledger.recent(site_id=request.args.get("site_id") or None, limit=int_arg("limit", 20))
        return jsonify({"success": True, "entries": [e.to_dict() for e in entries]})
