from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .common.http import register_error_handlers
from .container import Container, build_container
from .core.constants import DEFAULT_DISPLAY_TIMEZONE, DEFAULT_MAX_RECALCULATION_DEPTH
from .core.logging_config import configure_logging
from .database.bootstrap import apply_schema, list_tables
from .employees.controller import register as register_employees
from .recalculation.controller import register as register_recalculation
from .tracking.controller import register as register_tracking

logger = logging.getLogger(__name__)


def create_app(container: Optional[Container] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    db_config = getattr(settings, "DB_CONFIG")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))
    app.json.ensure_ascii = False

    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))
    logger.info(
        "starting site-payroll",
        extra={
            "settings": settings_module,
            "db": f"{db_config.get('user')}@{db_config.get('host')}:{db_config.get('port', 3306)}/{db_config.get('database')}",
        },
    )

    if container is None:
        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            schema_path = Path(__file__).resolve().parents[3] / "database" / "schema.sql"
            apply_schema(db_config, schema_path=schema_path)
            logger.info("schema ready", extra={"tables": len(list_tables(db_config))})

        container = build_container(
            db_config=db_config,
            calculation_policy=getattr(settings, "CALCULATION_POLICY", "default"),
            max_recalculation_depth=int(getattr(settings, "MAX_RECALCULATION_DEPTH", DEFAULT_MAX_RECALCULATION_DEPTH)),
            recalculation_workers=int(getattr(settings, "RECALCULATION_WORKERS", 1)),
            display_timezone=getattr(settings, "DISPLAY_TIMEZONE", DEFAULT_DISPLAY_TIMEZONE),
        )

    app.extensions["site_payroll"] = container
    register_error_handlers(app)
    register_employees(app, container)
    register_tracking(app, container)
    register_recalculation(app, container)

    return app
