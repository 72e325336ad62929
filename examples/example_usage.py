"""Using the service layer directly, without Flask.

Creates an employee, records a week of attendance and a payout, then prints
the change ledger entries that the update produced.
"""

import importlib

from config import get_settings_module

from src.site_payroll.site_payroll.container import build_container
from src.site_payroll.site_payroll.tracking.model import LedgerFilters


def main():
    settings = importlib.import_module(get_settings_module())
    container = build_container(db_config=settings.DB_CONFIG, calculation_policy=settings.CALCULATION_POLICY)

    created = container.employee_service.create_employee(name="Ravi Kumar", site_id="SITE-1", rate=600, actor="supervisor")
    record = created.record
    print("created", record.empid, record.month, record.year)

    result = container.update_orchestrator.update(
        site_id=record.site_id,
        empid=record.empid,
        month=record.month,
        year=record.year,
        update={
            "attendance": ["P", "P", "P8", "A", "P", "P4", "P"],
            "payouts": [{"value": 1500, "date": "2024-03-05", "remark": "Weekly advance"}],
        },
        actor="supervisor",
        remark="First week",
    )
    print("closing balance", result.record.closing_balance, "changes", result.changes_written)

    page = container.change_ledger.query(LedgerFilters(site_id=record.site_id, employee_id=record.empid))
    for entry in page.entries:
        print(entry.metadata.get("display_message"))


if __name__ == "__main__":
    main()
