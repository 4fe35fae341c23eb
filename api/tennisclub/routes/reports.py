"""Report routes: court usage by member, financial report recalculation."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tennisclub.core.database import get_db
from tennisclub.core.dependencies import require_admin
from tennisclub.models.member import User
from tennisclub.schemas import CourtUsageReportOut, FinancialSummaryOut
from tennisclub.services.financial_report import recalculate_financial_report
from tennisclub.services.usage_report import get_reports_for_year

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/court-usage", response_model=list[CourtUsageReportOut])
async def court_usage(
    year: int | None = Query(default=None, ge=2000, le=2100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await get_reports_for_year(db, year or datetime.now(UTC).year)


@router.post("/financial/recalculate", response_model=FinancialSummaryOut)
async def recalculate_financial(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    summary = await recalculate_financial_report(db)
    if summary is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Financial report not found")
    return summary
