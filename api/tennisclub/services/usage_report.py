"""Court usage report aggregation.

Recording a payment adds its amount to the payer's bucket for the month the
court was used; unrecording subtracts it again. Buckets never go negative
and a bucket that reaches zero is removed, so record followed by unrecord
leaves the report exactly as it was.
"""

import logging
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tennisclub.models.base import utcnow
from tennisclub.models.member import User
from tennisclub.models.payment import Payment
from tennisclub.models.usage_report import CourtUsageReport

logger = logging.getLogger(__name__)


def month_key(usage_date: date) -> str:
    return f"{usage_date.year:04d}-{usage_date.month:02d}"


def resolve_usage_date(payment: Payment) -> date:
    """When the court was used: explicit metadata, else payment date, else today."""
    raw = (payment.meta or {}).get("court_usage_date")
    if raw:
        try:
            return datetime.fromisoformat(raw).date()
        except (TypeError, ValueError):
            logger.warning("Payment %s has unparseable court_usage_date %r", payment.id, raw)
    if payment.payment_date is not None:
        return payment.payment_date.date()
    return utcnow().date()


async def _get_report(db: AsyncSession, member_name: str, year: int) -> CourtUsageReport | None:
    result = await db.execute(
        select(CourtUsageReport).where(
            CourtUsageReport.member_name == member_name,
            CourtUsageReport.year == year,
        )
    )
    return result.scalar_one_or_none()


async def add_amount(db: AsyncSession, member_name: str, usage_date: date, amount: float) -> CourtUsageReport:
    key = month_key(usage_date)
    report = await _get_report(db, member_name, usage_date.year)
    if report is None:
        report = CourtUsageReport(member_name=member_name, year=usage_date.year, monthly_amounts={})
        db.add(report)

    # Reassign so the JSON column is flagged dirty
    amounts = dict(report.monthly_amounts or {})
    amounts[key] = round(amounts.get(key, 0.0) + amount, 2)
    report.monthly_amounts = amounts
    report.recalculate_total()
    await db.flush()

    logger.info("Usage report: +%.2f for %s in %s", amount, member_name, key)
    return report


async def subtract_amount(
    db: AsyncSession, member_name: str, usage_date: date, amount: float
) -> CourtUsageReport | None:
    key = month_key(usage_date)
    report = await _get_report(db, member_name, usage_date.year)
    if report is None or key not in (report.monthly_amounts or {}):
        logger.warning("Usage report: nothing to subtract for %s in %s", member_name, key)
        return report

    amounts = dict(report.monthly_amounts)
    remaining = round(max(0.0, amounts[key] - amount), 2)
    if remaining <= 0:
        del amounts[key]
    else:
        amounts[key] = remaining
    report.monthly_amounts = amounts
    report.recalculate_total()
    await db.flush()

    logger.info("Usage report: -%.2f for %s in %s", amount, member_name, key)
    return report


async def _payer_name(db: AsyncSession, payment: Payment) -> str | None:
    result = await db.execute(select(User).where(User.id == payment.user_id))
    user = result.scalar_one_or_none()
    if user is None:
        logger.warning("Usage report: payer %s of payment %s not found", payment.user_id, payment.id)
        return None
    return user.full_name


async def apply_recorded_payment(db: AsyncSession, payment: Payment) -> None:
    member_name = await _payer_name(db, payment)
    if member_name is None:
        return
    await add_amount(db, member_name, resolve_usage_date(payment), payment.amount)


async def reverse_recorded_payment(db: AsyncSession, payment: Payment) -> None:
    member_name = await _payer_name(db, payment)
    if member_name is None:
        return
    await subtract_amount(db, member_name, resolve_usage_date(payment), payment.amount)


async def get_reports_for_year(db: AsyncSession, year: int) -> list[CourtUsageReport]:
    result = await db.execute(
        select(CourtUsageReport).where(CourtUsageReport.year == year).order_by(CourtUsageReport.member_name)
    )
    return list(result.scalars().all())
