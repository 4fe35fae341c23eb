"""Financial report document maintenance.

The club's financial statement lives in a JSON document maintained by the
treasurer. Court receipts in that document are derived: every time a
payment is recorded or unrecorded, the recorded total is re-summed and the
court receipts, the app service fee and the totals are rewritten. Concurrent
recalculations are last-writer-wins; each one re-derives everything from
the database, so the final write is always consistent.

The rewrite only ever reads committed data: the record and unrecord routes
schedule run_financial_report_refresh after their transaction commits.
"""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tennisclub.core.config import settings
from tennisclub.core.database import async_session_factory
from tennisclub.models.base import utcnow
from tennisclub.models.payment import Payment, PaymentStatus
from tennisclub.services.notifications import FINANCIAL_DATA_UPDATED, notify

logger = logging.getLogger(__name__)

COURT_RECEIPTS = "Tennis Court Usage Receipts"
APP_SERVICE_FEE = "App Service Fee"


@dataclass
class FinancialSummary:
    recorded_total: float
    court_receipts: float
    app_service_fee: float
    court_revenue: float
    total_receipts: float
    total_disbursements: float
    net_income: float
    fund_balance: float


async def recorded_total(db: AsyncSession) -> float:
    result = await db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.status == PaymentStatus.RECORD,
            Payment.recorded_at.is_not(None),
        )
    )
    return round(float(result.scalar_one()), 2)


def _upsert_line(items: list, description: str, amount: float) -> None:
    for item in items:
        if item.get("description") == description:
            item["amount"] = amount
            return
    items.append({"description": description, "amount": amount})


def apply_recorded_total(document: dict, total: float) -> FinancialSummary:
    """Rewrite the derived lines of a financial report document in place."""
    receipts = document.setdefault("receiptsCollections", [])
    disbursements = document.setdefault("disbursementsExpenses", [])

    court_receipts = round(settings.court_receipts_baseline + total, 2)
    service_fee = round(total * settings.app_service_fee_rate, 2)
    court_revenue = round(total - service_fee, 2)

    _upsert_line(receipts, COURT_RECEIPTS, court_receipts)
    _upsert_line(disbursements, APP_SERVICE_FEE, service_fee)

    total_receipts = round(sum(item.get("amount", 0) for item in receipts), 2)
    total_disbursements = round(sum(item.get("amount", 0) for item in disbursements), 2)
    net_income = round(total_receipts - total_disbursements, 2)
    beginning = (document.get("beginningBalance") or {}).get("amount", 0)

    document["totalReceipts"] = total_receipts
    document["totalDisbursements"] = total_disbursements
    document["netIncome"] = net_income
    document["fundBalance"] = round(beginning + net_income, 2)
    document["courtRevenue"] = court_revenue
    document["lastUpdated"] = utcnow().isoformat()

    return FinancialSummary(
        recorded_total=total,
        court_receipts=court_receipts,
        app_service_fee=service_fee,
        court_revenue=court_revenue,
        total_receipts=total_receipts,
        total_disbursements=total_disbursements,
        net_income=net_income,
        fund_balance=document["fundBalance"],
    )


async def recalculate_financial_report(db: AsyncSession, path: str | None = None) -> FinancialSummary | None:
    """Re-derive court receipts from recorded payments and rewrite the report file.

    Returns None (and logs a warning) when the report file does not exist.
    """
    report_path = Path(path or settings.financial_report_path)
    if not report_path.exists():
        logger.warning("Financial report %s not found, skipping update", report_path)
        return None

    total = await recorded_total(db)
    document = json.loads(await asyncio.to_thread(report_path.read_text, encoding="utf-8"))
    summary = apply_recorded_total(document, total)
    await asyncio.to_thread(report_path.write_text, json.dumps(document, indent=2), encoding="utf-8")

    logger.info(
        "Financial report updated: court receipts %.2f (recorded %.2f), fund balance %.2f",
        summary.court_receipts,
        total,
        summary.fund_balance,
    )
    await notify(FINANCIAL_DATA_UPDATED, asdict(summary))
    return summary


async def run_financial_report_refresh() -> FinancialSummary | None:
    """Background-task entry point with its own session."""
    try:
        async with async_session_factory() as db:
            return await recalculate_financial_report(db)
    except Exception:
        logger.exception("Financial report recalculation failed")
        return None
