from __future__ import annotations

from flask import Flask, jsonify, request

from ..common.http import current_actor, int_arg, json_body
from ..container import Container


def register(app: Flask, container: Container) -> None:
    cascade = container.recalculation_cascade

    @app.route("/api/sites/<site_id>/recalculation/status", methods=["GET"], endpoint="recalculation_status")
    def recalculation_status(site_id: str):
        return jsonify({"success": True, **cascade.status(site_id=site_id)})

    @app.route("/api/sites/<site_id>/recalculation/pending", methods=["GET"], endpoint="recalculation_pending")
    def recalculation_pending(site_id: str):
        data = cascade.list_pending(site_id=site_id, page=int_arg("page", 1), page_size=int_arg("page_size", 50))
        return jsonify({"success": True, **data})

    @app.route("/api/sites/<site_id>/recalculation/correct", methods=["POST"], endpoint="recalculation_correct")
    def recalculation_correct(site_id: str):
        body = json_body()
        report = cascade.correct_all(
            site_id=site_id,
            empids=body.get("empids"),
            policy=body.get("calculation_policy"),
        )
        return jsonify({"success": not report.failed, **report.to_dict()})

    @app.route("/api/sites/<site_id>/recalculation/mark", methods=["POST"], endpoint="recalculation_mark")
    def recalculation_mark(site_id: str):
        body = json_body()
        count = cascade.mark_for_recalculation(
            site_id=site_id,
            empid=body.get("empid"),
            from_month=body.get("from_month"),
            from_year=body.get("from_year"),
            reason=body.get("reason") or f"Marked manually by {current_actor(body)}",
        )
        return jsonify({"success": True, "marked": count})

    @app.route(
        "/api/sites/<site_id>/employees/<empid>/recalculate",
        methods=["POST"],
        endpoint="recalculate_employee",
    )
    def recalculate_employee(site_id: str, empid: str):
        result = cascade.sweep(site_id=site_id, empid=empid, policy=request.args.get("calculation_policy"))
        return jsonify({"success": True, **result.to_dict()})

    @app.route("/api/sites/<site_id>/employees/<empid>/gaps", methods=["GET"], endpoint="employment_gaps")
    def employment_gaps(site_id: str, empid: str):
        gaps = cascade.detect_employment_gaps(site_id=site_id, empid=empid)
        return jsonify({"success": True, "empid": empid, "has_gaps": bool(gaps), "gaps": gaps})
