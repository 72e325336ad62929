from __future__ import annotations

import pytest

from src.site_payroll.site_payroll.container import assemble_container
from tests.fakes import InMemoryEmployees, InMemoryLedger


@pytest.fixture
def employees():
    return InMemoryEmployees()


@pytest.fixture
def ledger_store():
    return InMemoryLedger()


@pytest.fixture
def container(employees, ledger_store):
    return assemble_container(employees_repo=employees, ledger_repo=ledger_store)
