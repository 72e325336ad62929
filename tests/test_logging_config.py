from __future__ import annotations

import json
import logging

from src.site_payroll.site_payroll.core.logging_config import JsonFormatter, configure_logging


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("site_payroll.test", logging.INFO, __file__, 1, "month %s recalculated", ("04/2024",), None)
    record.empid = "EMP001"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "month 04/2024 recalculated"
    assert payload["level"] == "INFO"
    assert payload["empid"] == "EMP001"


def test_configure_logging_installs_one_handler():
    logger = configure_logging("DEBUG", logger_name="site_payroll_logging_test")
    configure_logging("INFO", logger_name="site_payroll_logging_test")

    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, JsonFormatter)
