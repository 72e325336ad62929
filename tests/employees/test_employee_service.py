from __future__ import annotations

from datetime import datetime

import pytest

from src.site_payroll.site_payroll.container import assemble_container
from src.site_payroll.site_payroll.core.enums import ChangeType, TrackedField
from src.site_payroll.site_payroll.core.exceptions import ConflictError, NotFoundError, ValidationError
from src.site_payroll.site_payroll.employees.model import PaymentEntry, format_employee_id
from src.site_payroll.site_payroll.employees.service import EmployeeService
from src.site_payroll.site_payroll.payroll.calculator.standard_calculator import StandardPayrollCalculator
from tests.fakes import InMemoryEmployees, InMemoryLedger, make_record

TEN_DAYS = ["P"] * 10


def _service(repo, store=None):
    container = assemble_container(employees_repo=repo, ledger_repo=store or InMemoryLedger())
    return EmployeeService(
        repo,
        ledger=container.change_ledger,
        cascade=container.recalculation_cascade,
        calculator_factory=container.calculator_factory,
        clock=lambda: datetime(2024, 6, 10, 9, 0),
    )


def _seed(repo, empid, month, year=2024, **kwargs):
    kwargs.setdefault("attendance", TEN_DAYS)
    return repo.seed(StandardPayrollCalculator().apply_to(make_record(empid=empid, month=month, year=year, **kwargs)))


def test_format_employee_id_pads_to_three_digits():
    assert format_employee_id(1) == "EMP001"
    assert format_employee_id(42) == "EMP042"
    assert format_employee_id(1234) == "EMP1234"


def test_create_first_employee_defaults_to_current_month():
    repo, store = InMemoryEmployees(), InMemoryLedger()

    result = _service(repo, store).create_employee(name="  Ravi Kumar ", site_id="site-1", rate=650, actor="alice")

    record = result.record
    assert record.empid == "EMP001"
    assert (record.month, record.year) == (6, 2024)
    assert record.name == "Ravi Kumar"
    assert record.version == 1
    assert record.attendance == ()
    assert record.carry_forwarded.remark == "Initial setup - new employee"
    assert record.carry_forwarded.value == 0
    assert record.created_by == "alice"
    assert result.changes_written == 1
    entry = store.entries[0]
    assert (entry.field, entry.change_type) == (TrackedField.RECORD, ChangeType.ADDED)
    assert entry.change_data["snapshot"]["empid"] == "EMP001"


def test_create_assigns_next_serial_across_sites():
    repo = InMemoryEmployees([make_record(empid="EMP007"), make_record(empid="EMP003", site_id="site-2")])

    result = _service(repo).create_employee(name="Asha", site_id="site-1", rate=500, month=3, year=2024)

    assert result.record.empid == "EMP008"


def test_creates_at_different_sites_get_distinct_ids():
    repo = InMemoryEmployees([make_record(empid="EMP004")])
    service = _service(repo)

    first = service.create_employee(name="Asha", site_id="site-1", rate=500)
    second = service.create_employee(name="Ravi", site_id="site-2", rate=500)

    assert (first.record.empid, second.record.empid) == ("EMP005", "EMP006")
    assert repo.get(site_id="site-1", empid="EMP005", month=6, year=2024).name == "Asha"
    assert repo.get(site_id="site-2", empid="EMP006", month=6, year=2024).name == "Ravi"


def test_deleted_employee_id_is_not_handed_out_again():
    repo = InMemoryEmployees()
    service = _service(repo)
    created = service.create_employee(name="Asha", site_id="site-1", rate=500)
    service.delete_all(site_id="site-1", empid=created.record.empid)

    result = service.create_employee(name="Ravi", site_id="site-1", rate=500)

    assert created.record.empid == "EMP001"
    assert result.record.empid == "EMP002"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"name": "", "rate": 500},
        {"name": "Asha", "rate": 0},
        {"name": "Asha", "rate": "abc"},
        {"name": "Asha", "rate": 500, "month": 13},
    ],
)
def test_create_rejects_invalid_input(kwargs):
    with pytest.raises(ValidationError):
        _service(InMemoryEmployees()).create_employee(site_id="site-1", **kwargs)


def test_create_reports_ledger_failure_without_undoing_insert():
    repo = InMemoryEmployees()

    result = _service(repo, InMemoryLedger(fail=True)).create_employee(name="Asha", site_id="site-1", rate=500)

    assert result.tracking_warning
    assert repo.get(site_id="site-1", empid="EMP001", month=6, year=2024) is not None


def test_delete_single_month_writes_one_snapshot_entry():
    repo, store = InMemoryEmployees(), InMemoryLedger()
    may = _seed(repo, "EMP002", 5)
    _seed(repo, "EMP002", 6)
    july = _seed(repo, "EMP002", 7)

    result = _service(repo, store).delete_month(site_id="site-1", empid="EMP002", month=6, year=2024, actor="bob")

    assert [r.period for r in repo.list_for_employee(site_id="site-1", empid="EMP002")] == [(5, 2024), (7, 2024)]
    assert len(store.entries) == 1
    entry = store.entries[0]
    assert (entry.field, entry.change_type, entry.changed_by) == (TrackedField.RECORD, ChangeType.REMOVED, "bob")
    assert entry.change_data["snapshot"]["month"] == 6
    assert entry.change_data["snapshot"]["attendance"] == TEN_DAYS
    assert repo.get(site_id="site-1", empid="EMP002", month=5, year=2024) == may
    remaining_july = repo.get(site_id="site-1", empid="EMP002", month=7, year=2024)
    assert remaining_july.attendance == july.attendance
    assert remaining_july.rate == july.rate
    assert result.later_months_marked == 1


def test_delete_missing_month_raises_not_found():
    with pytest.raises(NotFoundError):
        _service(InMemoryEmployees()).delete_month(site_id="site-1", empid="EMP001", month=6, year=2024)


def test_delete_proceeds_when_ledger_is_down():
    repo = InMemoryEmployees()
    _seed(repo, "EMP001", 6)

    result = _service(repo, InMemoryLedger(fail=True)).delete_month(site_id="site-1", empid="EMP001", month=6, year=2024)

    assert result.tracking_warning
    assert repo.get(site_id="site-1", empid="EMP001", month=6, year=2024) is None


def test_delete_all_writes_entry_per_month_and_marks_nothing():
    repo, store = InMemoryEmployees(), InMemoryLedger()
    for month in (4, 5, 6):
        _seed(repo, "EMP001", month)
    _seed(repo, "EMP002", 6)

    result = _service(repo, store).delete_all(site_id="site-1", empid="EMP001")

    assert result["deleted_months"] == 3
    assert result["changes_written"] == 3
    assert result["tracking_warning"] is None
    assert repo.list_for_employee(site_id="site-1", empid="EMP001") == []
    assert [e.change_data["snapshot"]["month"] for e in store.entries] == [4, 5, 6]
    assert repo.count_dirty() == 0


def test_bulk_delete_collects_missing_employees():
    repo = InMemoryEmployees()
    _seed(repo, "EMP001", 6)

    result = _service(repo).bulk_delete(site_id="site-1", month=6, year=2024, empids=["EMP001", "EMP404"])

    assert [s["empid"] for s in result.succeeded] == ["EMP001"]
    assert [(f["empid"], f["error_type"]) for f in result.failed] == [("EMP404", "NotFoundError")]


def test_import_to_next_month_carries_closing_balance():
    repo, store = InMemoryEmployees(), InMemoryLedger()
    _seed(repo, "EMP001", 5, payouts=[PaymentEntry(value=1000, remark="Advance", created_by="alice")])
    _seed(repo, "EMP002", 5, additional_req_pays=[PaymentEntry(value=300, remark="Bonus", created_by="alice")])
    _seed(repo, "EMP001", 7)

    result = _service(repo, store).import_between_months(
        site_id="site-1", source_month=5, source_year=2024, target_month=6, target_year=2024, actor="alice"
    )

    assert [s["empid"] for s in result.succeeded] == ["EMP001", "EMP002"]
    first = repo.get(site_id="site-1", empid="EMP001", month=6, year=2024)
    assert first.attendance == () and first.payouts == ()
    assert first.carry_forwarded.value == 4000
    assert first.carry_forwarded.remark == "Carried forward from 05/2024 - Previous balance: 4000"
    assert first.closing_balance == 4000
    second = repo.get(site_id="site-1", empid="EMP002", month=6, year=2024)
    assert second.additional_req_pays == ()
    assert second.closing_balance == 5300
    assert [(e.field, e.change_type) for e in store.entries] == [(TrackedField.RECORD, ChangeType.ADDED)] * 2
    assert result.succeeded[0]["later_months_marked"] == 1


def test_import_rejects_source_without_a_positive_rate():
    repo = InMemoryEmployees()
    _seed(repo, "EMP001", 5)
    _seed(repo, "EMP002", 5, rate=0)

    result = _service(repo).import_between_months(
        site_id="site-1", source_month=5, source_year=2024, target_month=6, target_year=2024
    )

    assert [s["empid"] for s in result.succeeded] == ["EMP001"]
    assert result.failed[0]["empid"] == "EMP002"
    assert result.failed[0]["error_type"] == "ValidationError"
    assert repo.get(site_id="site-1", empid="EMP002", month=6, year=2024) is None


def test_import_without_carry_forward():
    repo = InMemoryEmployees()
    _seed(repo, "EMP001", 5)

    _service(repo).import_between_months(
        site_id="site-1",
        source_month=5,
        source_year=2024,
        target_month=6,
        target_year=2024,
        preserve_carry_forward=False,
    )

    record = repo.get(site_id="site-1", empid="EMP001", month=6, year=2024)
    assert record.carry_forwarded.value == 0
    assert record.carry_forwarded.remark == "New month import from 05/2024 - No carry forward"


def test_import_into_past_month_never_carries_forward():
    repo = InMemoryEmployees()
    _seed(repo, "EMP001", 5)

    _service(repo).import_between_months(
        site_id="site-1", source_month=5, source_year=2024, target_month=4, target_year=2024
    )

    record = repo.get(site_id="site-1", empid="EMP001", month=4, year=2024)
    assert record.carry_forwarded.value == 0
    assert record.carry_forwarded.remark == "Import from 05/2024 to past month - No carry forward applied"


def test_import_can_keep_additional_pays():
    repo = InMemoryEmployees()
    _seed(repo, "EMP001", 5, additional_req_pays=[PaymentEntry(value=300, remark="Bonus")])

    _service(repo).import_between_months(
        site_id="site-1",
        source_month=5,
        source_year=2024,
        target_month=6,
        target_year=2024,
        preserve_additional_pays=True,
    )

    record = repo.get(site_id="site-1", empid="EMP001", month=6, year=2024)
    assert [p.value for p in record.additional_req_pays] == [300]
    assert record.additional_req_pays[0].created_by == "legacy_system"
    assert record.closing_balance == 5300 + 300


def test_import_conflict_rejects_whole_batch():
    repo, store = InMemoryEmployees(), InMemoryLedger()
    for empid in ("EMP001", "EMP002", "EMP003"):
        _seed(repo, empid, 5)
    _seed(repo, "EMP003", 6)
    _seed(repo, "EMP002", 6)

    with pytest.raises(ConflictError) as exc:
        _service(repo, store).import_between_months(
            site_id="site-1", source_month=5, source_year=2024, target_month=6, target_year=2024
        )

    assert exc.value.conflicting_ids == ["EMP002", "EMP003"]
    assert repo.get(site_id="site-1", empid="EMP001", month=6, year=2024) is None
    assert store.entries == []


def test_import_requires_sources_and_distinct_periods():
    service = _service(InMemoryEmployees())
    with pytest.raises(NotFoundError):
        service.import_between_months(site_id="site-1", source_month=5, source_year=2024, target_month=6, target_year=2024)
    with pytest.raises(ValidationError):
        service.import_between_months(site_id="site-1", source_month=5, source_year=2024, target_month=5, target_year=2024)


def test_import_repairs_stale_source_first():
    repo = InMemoryEmployees()
    _seed(repo, "EMP001", 4)
    repo.seed(make_record(month=5, attendance=TEN_DAYS, closing_balance=1, recalculation_needed=True))

    _service(repo).import_between_months(
        site_id="site-1", source_month=5, source_year=2024, target_month=6, target_year=2024
    )

    assert repo.get(site_id="site-1", empid="EMP001", month=6, year=2024).carry_forwarded.value == 10000


def test_available_for_import_flags_existing_targets():
    repo = InMemoryEmployees()
    _seed(repo, "EMP001", 5)
    _seed(repo, "EMP002", 5)
    _seed(repo, "EMP002", 6)

    rows = _service(repo).available_for_import(
        site_id="site-1", source_month=5, source_year=2024, target_month=6, target_year=2024
    )

    assert [(r["empid"], r["exists_in_target"], r["closing_balance"]) for r in rows] == [
        ("EMP001", False, 5000),
        ("EMP002", True, 5000),
    ]


def test_get_employee_data_repairs_stale_record():
    repo = InMemoryEmployees()
    _seed(repo, "EMP001", 5)
    repo.seed(make_record(month=6, attendance=TEN_DAYS, closing_balance=1, recalculation_needed=True))

    record = _service(repo).get_employee_data(site_id="site-1", empid="EMP001", month=6, year=2024)

    assert record.recalculation_needed is False
    assert record.carry_forwarded.value == 5000
    assert record.closing_balance == 10000


def test_get_employee_data_missing_raises_not_found():
    with pytest.raises(NotFoundError):
        _service(InMemoryEmployees()).get_employee_data(site_id="site-1", empid="EMP001", month=6, year=2024)


def test_list_employees_returns_fresh_records():
    repo = InMemoryEmployees()
    _seed(repo, "EMP002", 6)
    repo.seed(make_record(empid="EMP001", month=6, attendance=["P"], recalculation_needed=True))

    records = _service(repo).list_employees(site_id="site-1", month=6, year=2024)

    assert [(r.empid, r.recalculation_needed) for r in records] == [("EMP001", False), ("EMP002", False)]
