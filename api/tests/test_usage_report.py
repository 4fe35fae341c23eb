"""Court usage report aggregation tests."""

from datetime import UTC, date, datetime
from types import SimpleNamespace

import pytest

from tennisclub.models import CourtUsageReport
from tennisclub.services.usage_report import (
    add_amount,
    get_reports_for_year,
    month_key,
    resolve_usage_date,
    subtract_amount,
)


class TestResolveUsageDate:
    def test_metadata_wins(self):
        payment = SimpleNamespace(
            id=1, meta={"court_usage_date": "2025-03-10"}, payment_date=datetime(2025, 4, 1, tzinfo=UTC)
        )
        assert resolve_usage_date(payment) == date(2025, 3, 10)

    def test_falls_back_to_payment_date(self):
        payment = SimpleNamespace(id=1, meta={}, payment_date=datetime(2025, 4, 1, 9, tzinfo=UTC))
        assert resolve_usage_date(payment) == date(2025, 4, 1)

    def test_unparseable_metadata_falls_back(self):
        payment = SimpleNamespace(
            id=1, meta={"court_usage_date": "next tuesday"}, payment_date=datetime(2025, 4, 1, tzinfo=UTC)
        )
        assert resolve_usage_date(payment) == date(2025, 4, 1)

    def test_month_key(self):
        assert month_key(date(2025, 3, 10)) == "2025-03"
        assert month_key(date(2025, 11, 30)) == "2025-11"


@pytest.mark.asyncio
async def test_add_accumulates_per_month(db):
    await add_amount(db, "Maria Santos", date(2025, 3, 10), 40)
    await add_amount(db, "Maria Santos", date(2025, 3, 22), 60)
    report = await add_amount(db, "Maria Santos", date(2025, 4, 2), 20)
    await db.commit()

    assert report.monthly_amounts == {"2025-03": 100.0, "2025-04": 20.0}
    assert report.total_amount == 120.0


@pytest.mark.asyncio
async def test_years_are_separate_rows(db):
    await add_amount(db, "Maria Santos", date(2024, 12, 30), 40)
    await add_amount(db, "Maria Santos", date(2025, 1, 2), 40)
    await db.commit()

    assert [r.member_name for r in await get_reports_for_year(db, 2024)] == ["Maria Santos"]
    assert len(await get_reports_for_year(db, 2025)) == 1


@pytest.mark.asyncio
async def test_subtract_never_goes_negative(db):
    await add_amount(db, "John Dela Cruz", date(2025, 3, 10), 40)
    await add_amount(db, "John Dela Cruz", date(2025, 4, 10), 30)

    report = await subtract_amount(db, "John Dela Cruz", date(2025, 3, 10), 100)
    await db.commit()

    assert "2025-03" not in report.monthly_amounts
    assert report.monthly_amounts == {"2025-04": 30.0}
    assert report.total_amount == 30.0


@pytest.mark.asyncio
async def test_partial_subtract(db):
    await add_amount(db, "John Dela Cruz", date(2025, 3, 10), 100)
    report = await subtract_amount(db, "John Dela Cruz", date(2025, 3, 10), 40)
    assert report.monthly_amounts == {"2025-03": 60.0}


@pytest.mark.asyncio
async def test_subtract_without_bucket_is_a_no_op(db):
    assert await subtract_amount(db, "Nobody", date(2025, 3, 10), 40) is None

    await add_amount(db, "John Dela Cruz", date(2025, 4, 10), 30)
    report = await subtract_amount(db, "John Dela Cruz", date(2025, 3, 10), 40)
    assert report.monthly_amounts == {"2025-04": 30.0}


@pytest.mark.asyncio
async def test_total_recalculated_on_save(db):
    report = CourtUsageReport(member_name="Liza Mendoza", year=2025, monthly_amounts={"2025-01": 10, "2025-02": 15.5})
    db.add(report)
    await db.commit()
    assert report.total_amount == 25.5
