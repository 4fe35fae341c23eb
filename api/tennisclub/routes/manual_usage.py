"""Manual court usage routes (superadmin only)."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tennisclub.core.database import get_db
from tennisclub.core.dependencies import require_superadmin
from tennisclub.models.member import User
from tennisclub.schemas import ManualCourtUsageCreate, ManualCourtUsageOut
from tennisclub.services.manual_usage import PlayerCharge, create_manual_court_usage, get_manual_usage_history

router = APIRouter(prefix="/manual-court-usage", tags=["manual-court-usage"])


@router.post("", response_model=ManualCourtUsageOut, status_code=status.HTTP_201_CREATED)
async def create(
    body: ManualCourtUsageCreate,
    admin: User = Depends(require_superadmin),
    db: AsyncSession = Depends(get_db),
):
    return await create_manual_court_usage(
        db,
        admin,
        usage_date=body.date,
        start_time=body.start_time,
        end_time=body.end_time,
        players=[PlayerCharge(player_name=p.player_name, amount=p.amount) for p in body.players],
        description=body.description,
    )


@router.get("")
async def history(admin: User = Depends(require_superadmin), db: AsyncSession = Depends(get_db)):
    sessions = await get_manual_usage_history(db)
    return {"sessions": sessions, "total_sessions": len(sessions)}
