from __future__ import annotations

import logging
from typing import Any, Optional

from flask import Flask, jsonify, request

from ..core.constants import SYSTEM_ACTOR
from ..core.exceptions import ConflictError, DomainError, ValidationError

logger = logging.getLogger(__name__)

ACTOR_HEADER = "X-Actor"


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def current_actor(body: Optional[dict] = None) -> str:
    """Who is making the change. Authentication happens upstream."""
    actor = request.headers.get(ACTOR_HEADER) or (body or {}).get("actor") or (body or {}).get("changed_by")
    return str(actor).strip() if actor else SYSTEM_ACTOR


def int_arg(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def bool_value(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def handle_domain_error(exc: DomainError):
        payload: dict[str, Any] = {
            "success": False,
            "error": str(exc),
            "error_type": type(exc).__name__,
        }
        if isinstance(exc, ConflictError):
            payload["conflicting_ids"] = exc.conflicting_ids
        if exc.status_code >= 500:
            logger.error("request failed", extra={"path": request.path, "error_type": type(exc).__name__})
        return jsonify(payload), exc.status_code
