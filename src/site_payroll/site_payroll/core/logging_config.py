"""JSON line logging for the site_payroll package."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

_ROOT_LOGGER = __name__.rsplit(".", 2)[0]

_STDLIB_KEYS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()) | {"message", "taskName"}


class JsonFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val
        if record.exc_info and record.exc_info[1] is not None:
            payload["exc_type"] = type(record.exc_info[1]).__name__
            payload["exc_message"] = str(record.exc_info[1])
        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(level: str | int = "INFO", *, logger_name: str = _ROOT_LOGGER) -> logging.Logger:
    """Install one JSON stream handler on the package logger. Safe to call twice."""
    logger = logging.getLogger(logger_name)
    logger.setLevel(level if isinstance(level, int) else str(level).upper())
    if not any(getattr(h, "_site_payroll", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        handler._site_payroll = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    logger.propagate = False
    return logger
