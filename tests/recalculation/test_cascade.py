from __future__ import annotations

import pytest

from src.site_payroll.site_payroll.common.datetime_utils import next_period
from src.site_payroll.site_payroll.core.exceptions import RecalculationDepthExceeded, ValidationError
from src.site_payroll.site_payroll.payroll.calculator.factory import PayrollCalculatorFactory
from src.site_payroll.site_payroll.payroll.calculator.standard_calculator import StandardPayrollCalculator
from src.site_payroll.site_payroll.recalculation.cascade import RecalculationCascade
from tests.fakes import InMemoryEmployees, make_record

TEN_DAYS = ["P"] * 10


def _cascade(repo, **kwargs):
    return RecalculationCascade(repo, PayrollCalculatorFactory(), **kwargs)


def _seed_clean_chain(repo, periods, *, empid="EMP001", rate=500, attendance=TEN_DAYS):
    calc = StandardPayrollCalculator()
    carry = 0.0
    for month, year in periods:
        record = calc.apply_to(
            make_record(empid=empid, month=month, year=year, rate=rate, attendance=list(attendance), carry_forwarded=carry)
        )
        repo.seed(record)
        carry = record.closing_balance


def _periods(start_month, start_year, count):
    out = [(start_month, start_year)]
    while len(out) < count:
        out.append(next_period(*out[-1]))
    return out


def test_edit_flags_later_months_and_sweep_repairs_oldest_first():
    repo = InMemoryEmployees()
    _seed_clean_chain(repo, [(3, 2024), (4, 2024), (5, 2024)])
    cascade = _cascade(repo)

    march = repo.get(site_id="site-1", empid="EMP001", month=3, year=2024)
    repo.save(StandardPayrollCalculator().apply_to(make_record(rate=600, attendance=TEN_DAYS)), expected_version=march.version)
    marked = cascade.mark_future_months(site_id="site-1", empid="EMP001", month=3, year=2024, reason="rate change")

    assert marked == 2
    assert [r.period for r in repo.list_dirty(site_id="site-1")] == [(4, 2024), (5, 2024)]

    repo.saved.clear()
    result = cascade.sweep(site_id="site-1", empid="EMP001")

    assert result.recalculated == ((4, 2024), (5, 2024))
    assert [r.period for r in repo.saved] == [(4, 2024), (5, 2024)]
    april = repo.get(site_id="site-1", empid="EMP001", month=4, year=2024)
    may = repo.get(site_id="site-1", empid="EMP001", month=5, year=2024)
    assert april.carry_forwarded.value == 6000
    assert april.closing_balance == 11000
    assert may.carry_forwarded.value == 11000
    assert may.closing_balance == 16000
    assert not april.recalculation_needed and april.modification_reason is None
    assert repo.count_dirty(site_id="site-1") == 0


def test_long_chain_converges_within_cap():
    repo = InMemoryEmployees()
    periods = _periods(1, 2020, 50)
    _seed_clean_chain(repo, periods, rate=100, attendance=["P"])
    cascade = _cascade(repo, max_depth=50)
    cascade.mark_for_recalculation(site_id="site-1", reason="bulk fix", empid="EMP001")

    result = cascade.sweep(site_id="site-1", empid="EMP001")

    assert result.count == 50
    last = repo.get(site_id="site-1", empid="EMP001", month=periods[-1][0], year=periods[-1][1])
    assert last.closing_balance == 5000
    assert repo.count_dirty() == 0


def test_sweep_stops_at_depth_cap():
    repo = InMemoryEmployees()
    _seed_clean_chain(repo, _periods(1, 2020, 51), rate=100, attendance=["P"])
    cascade = _cascade(repo, max_depth=50)
    cascade.mark_for_recalculation(site_id="site-1", reason="bulk fix", empid="EMP001")

    with pytest.raises(RecalculationDepthExceeded) as exc:
        cascade.sweep(site_id="site-1", empid="EMP001")

    assert exc.value.max_depth == 50
    assert len(repo.saved) == 50
    assert repo.count_dirty() == 1


def test_previous_balance_skips_employment_gaps():
    repo = InMemoryEmployees()
    repo.seed(make_record(month=1, year=2024, closing_balance=700))
    repo.seed(make_record(month=4, year=2024, attendance=["P"], recalculation_needed=True))
    cascade = _cascade(repo)

    assert cascade.previous_balance(site_id="site-1", empid="EMP001", month=4, year=2024) == (700.0, (1, 2024))
    assert cascade.previous_balance(site_id="site-1", empid="EMP001", month=1, year=2024) == (0.0, None)

    cascade.sweep(site_id="site-1", empid="EMP001")
    april = repo.get(site_id="site-1", empid="EMP001", month=4, year=2024)
    assert april.carry_forwarded.value == 700
    assert april.closing_balance == 1200


def test_ensure_fresh_sweeps_only_stale_records():
    repo = InMemoryEmployees()
    _seed_clean_chain(repo, [(1, 2024), (2, 2024)])
    cascade = _cascade(repo)
    clean = repo.get(site_id="site-1", empid="EMP001", month=2, year=2024)

    assert cascade.ensure_fresh(clean) is clean

    repo.mark_dirty(site_id="site-1", reason="manual", empid="EMP001", from_month=2, from_year=2024)
    stale = repo.get(site_id="site-1", empid="EMP001", month=2, year=2024)
    fresh = cascade.ensure_fresh(stale)

    assert not fresh.recalculation_needed
    assert fresh.closing_balance == 10000


class FlakyEmployees(InMemoryEmployees):
    def save(self, record, *, expected_version):
        if record.empid == "EMP002":
            raise RuntimeError("disk full")
        return super().save(record, expected_version=expected_version)


@pytest.mark.parametrize("workers", [1, 4])
def test_correct_all_collects_per_employee_failures(workers):
    repo = FlakyEmployees()
    for empid in ("EMP001", "EMP002", "EMP003"):
        _seed_clean_chain(repo, [(1, 2024), (2, 2024)], empid=empid)
    cascade = _cascade(repo, workers=workers)
    cascade.mark_for_recalculation(site_id="site-1", reason="audit")

    report = cascade.correct_all(site_id="site-1")

    assert sorted(r.empid for r in report.succeeded) == ["EMP001", "EMP003"]
    assert report.records_recalculated == 4
    assert [(f["empid"], f["error_type"]) for f in report.failed] == [("EMP002", "RuntimeError")]
    assert report.to_dict()["employees_processed"] == 3


def test_correct_all_can_target_employees():
    repo = InMemoryEmployees()
    for empid in ("EMP001", "EMP002"):
        _seed_clean_chain(repo, [(1, 2024)], empid=empid)
    cascade = _cascade(repo)
    cascade.mark_for_recalculation(site_id="site-1", reason="audit")

    report = cascade.correct_all(site_id="site-1", empids=["EMP002"])

    assert [r.empid for r in report.succeeded] == ["EMP002"]
    assert [r.empid for r in repo.list_dirty()] == ["EMP001"]


def test_mark_requires_complete_period():
    cascade = _cascade(InMemoryEmployees())
    with pytest.raises(ValidationError):
        cascade.mark_for_recalculation(site_id="site-1", reason="x", from_month=3)
    with pytest.raises(ValidationError):
        cascade.mark_for_recalculation(site_id="site-1", reason="x", from_month=13, from_year=2024)


def test_status_and_pending_listing():
    repo = InMemoryEmployees()
    _seed_clean_chain(repo, [(2, 2024), (3, 2024), (4, 2024)], empid="EMP001")
    _seed_clean_chain(repo, [(3, 2024)], empid="EMP002")
    cascade = _cascade(repo)
    cascade.mark_future_months(site_id="site-1", empid="EMP001", month=2, year=2024, reason="edit")

    status = cascade.status(site_id="site-1")

    assert status["total_pending"] == 2
    assert status["employees_affected"] == 1
    assert status["needs_recalculation"] is True
    assert status["employees"] == [
        {"empid": "EMP001", "name": "Worker EMP001", "pending_months": 2, "oldest": "03/2024", "latest": "04/2024"}
    ]

    pending = cascade.list_pending(site_id="site-1", page=2, page_size=1)
    assert [(r["month"], r["year"]) for r in pending["records"]] == [(4, 2024)]
    assert pending["pagination"]["total_pages"] == 2


def test_detect_employment_gaps():
    repo = InMemoryEmployees()
    for month, year in [(11, 2023), (2, 2024), (3, 2024)]:
        repo.seed(make_record(month=month, year=year))

    gaps = _cascade(repo).detect_employment_gaps(site_id="site-1", empid="EMP001")

    assert gaps == [
        {
            "after": "11/2023",
            "before": "02/2024",
            "missing_months": [{"month": 12, "year": 2023}, {"month": 1, "year": 2024}],
        }
    ]
