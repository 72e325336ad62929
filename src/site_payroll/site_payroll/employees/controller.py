from __future__ import annotations

from flask import Flask, jsonify, request

from ..common.http import bool_value, current_actor, int_arg, json_body
from ..container import Container
from ..core.exceptions import ValidationError


def register(app: Flask, container: Container) -> None:
    service = container.employee_service
    orchestrator = container.update_orchestrator

    @app.route("/api/sites/<site_id>/employees", methods=["POST"], endpoint="create_employee")
    def create_employee(site_id: str):
        body = json_body()
        result = service.create_employee(
            name=body.get("name"),
            site_id=site_id,
            rate=body.get("rate"),
            month=body.get("month"),
            year=body.get("year"),
            actor=current_actor(body),
            policy=body.get("calculation_policy"),
        )
        return jsonify({"success": True, **result.to_dict()}), 201

    @app.route("/api/sites/<site_id>/employees", methods=["GET"], endpoint="list_employees")
    def list_employees(site_id: str):
        records = service.list_employees(
            site_id=site_id,
            month=int_arg("month"),
            year=int_arg("year"),
            policy=request.args.get("calculation_policy"),
        )
        return jsonify({"success": True, "count": len(records), "employees": [r.to_dict() for r in records]})

    @app.route(
        "/api/sites/<site_id>/employees/<empid>/<int:year>/<int:month>",
        methods=["GET"],
        endpoint="get_employee_month",
    )
    def get_employee_month(site_id: str, empid: str, year: int, month: int):
        record = service.get_employee_data(
            site_id=site_id,
            empid=empid,
            month=month,
            year=year,
            policy=request.args.get("calculation_policy"),
        )
        return jsonify({"success": True, "record": record.to_dict()})

    @app.route(
        "/api/sites/<site_id>/employees/<empid>/<int:year>/<int:month>",
        methods=["PATCH", "PUT"],
        endpoint="update_employee_month",
    )
    def update_employee_month(site_id: str, empid: str, year: int, month: int):
        body = json_body()
        update = body.get("update", body)
        if not isinstance(update, dict):
            raise ValidationError("update must be an object")
        result = orchestrator.update(
            site_id=site_id,
            empid=empid,
            month=month,
            year=year,
            update={k: v for k, v in update.items() if k not in {"actor", "remark", "calculation_policy"}},
            actor=current_actor(body),
            remark=body.get("remark"),
            policy=body.get("calculation_policy"),
        )
        return jsonify({"success": True, **result.to_dict()})

    @app.route(
        "/api/sites/<site_id>/employees/<empid>/<int:year>/<int:month>",
        methods=["DELETE"],
        endpoint="delete_employee_month",
    )
    def delete_employee_month(site_id: str, empid: str, year: int, month: int):
        body = json_body()
        result = service.delete_month(
            site_id=site_id,
            empid=empid,
            month=month,
            year=year,
            actor=current_actor(body),
            remark=body.get("remark"),
        )
        return jsonify({"success": True, **result.to_dict()})

    @app.route("/api/sites/<site_id>/employees/<empid>", methods=["DELETE"], endpoint="delete_employee_all")
    def delete_employee_all(site_id: str, empid: str):
        body = json_body()
        result = service.delete_all(site_id=site_id, empid=empid, actor=current_actor(body), remark=body.get("remark"))
        return jsonify({"success": True, **result})

    @app.route("/api/sites/<site_id>/employees/bulk-update", methods=["POST"], endpoint="bulk_update_employees")
    def bulk_update_employees(site_id: str):
        body = json_body()
        items = body.get("updates")
        if not isinstance(items, list):
            raise ValidationError("updates must be a list")
        result = orchestrator.bulk_update(
            items=[{**item, "site_id": site_id} for item in items if isinstance(item, dict)],
            actor=current_actor(body),
            policy=body.get("calculation_policy"),
        )
        return jsonify({"success": not result.failed, **result.to_dict()})

    @app.route("/api/sites/<site_id>/employees/bulk-delete", methods=["POST"], endpoint="bulk_delete_employees")
    def bulk_delete_employees(site_id: str):
        body = json_body()
        result = service.bulk_delete(
            site_id=site_id,
            month=body.get("month"),
            year=body.get("year"),
            empids=body.get("empids") or [],
            actor=current_actor(body),
            remark=body.get("remark"),
        )
        return jsonify({"success": not result.failed, **result.to_dict()})

    @app.route("/api/sites/<site_id>/employees/import", methods=["POST"], endpoint="import_employees")
    def import_employees(site_id: str):
        body = json_body()
        result = service.import_between_months(
            site_id=site_id,
            source_month=body.get("source_month"),
            source_year=body.get("source_year"),
            target_month=body.get("target_month"),
            target_year=body.get("target_year"),
            empids=body.get("empids"),
            preserve_carry_forward=bool_value(body.get("preserve_carry_forward"), True),
            preserve_additional_pays=bool_value(body.get("preserve_additional_pays"), False),
            actor=current_actor(body),
            policy=body.get("calculation_policy"),
        )
        status = 201 if result.succeeded else 200
        return jsonify({"success": not result.failed, **result.to_dict()}), status

    @app.route("/api/sites/<site_id>/employees/available-for-import", methods=["GET"], endpoint="available_for_import")
    def available_for_import(site_id: str):
        rows = service.available_for_import(
            site_id=site_id,
            source_month=int_arg("source_month"),
            source_year=int_arg("source_year"),
            target_month=int_arg("target_month"),
            target_year=int_arg("target_year"),
            policy=request.args.get("calculation_policy"),
        )
        return jsonify({"success": True, "count": len(rows), "employees": rows})
