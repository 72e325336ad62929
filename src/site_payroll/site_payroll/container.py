from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .core.constants import DEFAULT_DISPLAY_TIMEZONE, DEFAULT_MAX_RECALCULATION_DEPTH
from .core.enums import CalculationPolicy
from .database.connection import DBConfig, DatabaseConnection
from .employees.mysql_employee_repository import MySQLEmployeeRepository
from .employees.orchestrator import EmployeeUpdateOrchestrator
from .employees.repository import EmployeeRepository
from .employees.service import EmployeeService
from .payroll.calculator.factory import PayrollCalculatorFactory
from .recalculation.cascade import RecalculationCascade
from .tracking.diff_engine import ChangeDiffEngine
from .tracking.ledger import ChangeLedger
from .tracking.mysql_ledger_repository import MySQLChangeLedgerRepository
from .tracking.repository import ChangeLedgerRepository


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]

    employees_repo: EmployeeRepository
    ledger_repo: ChangeLedgerRepository

    calculator_factory: PayrollCalculatorFactory
    change_ledger: ChangeLedger
    recalculation_cascade: RecalculationCascade
    employee_service: EmployeeService
    update_orchestrator: EmployeeUpdateOrchestrator


def assemble_container(
    *,
    employees_repo: EmployeeRepository,
    ledger_repo: ChangeLedgerRepository,
    conn: Optional[DatabaseConnection] = None,
    calculation_policy: str = CalculationPolicy.DEFAULT.value,
    max_recalculation_depth: int = DEFAULT_MAX_RECALCULATION_DEPTH,
    recalculation_workers: int = 1,
    display_timezone: str = DEFAULT_DISPLAY_TIMEZONE,
) -> Container:
    calculator_factory = PayrollCalculatorFactory(default_policy=CalculationPolicy(calculation_policy))
    change_ledger = ChangeLedger(ledger_repo, display_timezone=display_timezone)
    recalculation_cascade = RecalculationCascade(
        employees_repo,
        calculator_factory,
        max_depth=max_recalculation_depth,
        workers=recalculation_workers,
    )
    employee_service = EmployeeService(
        employees_repo,
        ledger=change_ledger,
        cascade=recalculation_cascade,
        calculator_factory=calculator_factory,
    )
    update_orchestrator = EmployeeUpdateOrchestrator(
        employees_repo,
        ledger=change_ledger,
        cascade=recalculation_cascade,
        calculator_factory=calculator_factory,
        diff_engine=ChangeDiffEngine(),
    )

    return Container(
        conn=conn,
        employees_repo=employees_repo,
        ledger_repo=ledger_repo,
        calculator_factory=calculator_factory,
        change_ledger=change_ledger,
        recalculation_cascade=recalculation_cascade,
        employee_service=employee_service,
        update_orchestrator=update_orchestrator,
    )


def build_container(
    *,
    db_config: dict,
    calculation_policy: str = CalculationPolicy.DEFAULT.value,
    max_recalculation_depth: int = DEFAULT_MAX_RECALCULATION_DEPTH,
    recalculation_workers: int = 1,
    display_timezone: str = DEFAULT_DISPLAY_TIMEZONE,
) -> Container:
    conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))

    return assemble_container(
        employees_repo=MySQLEmployeeRepository(conn),
        ledger_repo=MySQLChangeLedgerRepository(conn),
        conn=conn,
        calculation_policy=calculation_policy,
        max_recalculation_depth=max_recalculation_depth,
        recalculation_workers=recalculation_workers,
        display_timezone=display_timezone,
    )
