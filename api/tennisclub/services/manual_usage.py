"""Manual court usage entry.

Superadmins enter court sessions that were played without a reservation
(walk-ins, tournaments paid on the day). Each player gets their own pending
cash payment, so the normal approve/record workflow applies afterwards.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tennisclub.core.errors import InvalidRequestError, PermissionDeniedError
from tennisclub.models.base import as_utc, utcnow
from tennisclub.models.member import User, UserRole
from tennisclub.models.payment import Payment, PaymentMethod, PaymentStatus
from tennisclub.services.member_matching import MatchConfig, classify
from tennisclub.services.payments import due_date_for, generate_reference

logger = logging.getLogger(__name__)

START_HOUR_RANGE = (5, 23)
END_HOUR_RANGE = (6, 24)


@dataclass
class PlayerCharge:
    player_name: str
    amount: float


@dataclass
class ManualUsageResult:
    session_id: str
    usage_date: date
    start_time: int
    end_time: int
    total_amount: float
    payments: list[dict] = field(default_factory=list)


def _validate(start_time: int, end_time: int, players: list[PlayerCharge]) -> None:
    if not START_HOUR_RANGE[0] <= start_time <= START_HOUR_RANGE[1]:
        raise InvalidRequestError("Start time must be between 5 (5 AM) and 23 (11 PM)")
    if not END_HOUR_RANGE[0] <= end_time <= END_HOUR_RANGE[1]:
        raise InvalidRequestError("End time must be between 6 (6 AM) and 24 (12 AM)")
    if end_time <= start_time:
        raise InvalidRequestError("End time must be after start time")
    if not players:
        raise InvalidRequestError("At least one player is required")
    for player in players:
        if not player.player_name or not player.player_name.strip():
            raise InvalidRequestError("All players must have a valid name")
        if player.amount is None or player.amount <= 0:
            raise InvalidRequestError(f"Invalid amount for player {player.player_name}")


async def _resolve_players(db: AsyncSession, players: list[PlayerCharge]) -> list[tuple[PlayerCharge, User]]:
    """Match every player to a user before anything is written."""
    result = await db.execute(select(User).where(User.is_active.is_(True), User.is_approved.is_(True)))
    users = {u.full_name: u for u in result.scalars().all()}
    config = MatchConfig.from_settings()

    resolved = []
    for player in players:
        match = classify(player.player_name, users.keys(), config)
        if not match.matched:
            raise InvalidRequestError(
                f'Player "{player.player_name.strip()}" not found in member database. '
                "Please ensure all players are registered members."
            )
        resolved.append((player, users[match.matched_name]))
    return resolved


async def create_manual_court_usage(
    db: AsyncSession,
    actor: User,
    usage_date: date,
    start_time: int,
    end_time: int,
    players: list[PlayerCharge],
    description: str | None = None,
) -> ManualUsageResult:
    """Create one pending cash payment per player for an out-of-band court session."""
    if actor.role != UserRole.SUPERADMIN:
        raise PermissionDeniedError("Superadmin access required")
    _validate(start_time, end_time, players)
    resolved = await _resolve_players(db, players)

    session_id = uuid.uuid4().hex
    created_at = utcnow()
    player_names = [p.player_name.strip() for p in players]
    description = description or (
        f"Court usage fee - {usage_date.isoformat()} ({start_time:02d}:00 - {end_time:02d}:00)"
    )

    result = ManualUsageResult(
        session_id=session_id,
        usage_date=usage_date,
        start_time=start_time,
        end_time=end_time,
        total_amount=round(sum(p.amount for p in players), 2),
    )
    for player, user in resolved:
        payment = Payment(
            user_id=user.id,
            amount=round(player.amount, 2),
            payment_method=PaymentMethod.CASH,
            status=PaymentStatus.PENDING,
            reference_number=generate_reference(),
            due_date=due_date_for(usage_date),
            description=description[:200],
            created_at=created_at,
            meta={
                "is_manual_payment": True,
                "manual_session_id": session_id,
                "player_names": player_names,
                "court_usage_date": usage_date.isoformat(),
                "time_slot": start_time,
                "start_time": start_time,
                "end_time": end_time,
                "created_by": actor.full_name,
                "created_by_id": actor.id,
            },
        )
        db.add(payment)
        await db.flush()
        result.payments.append(
            {
                "payment_id": payment.id,
                "player_name": player.player_name.strip(),
                "user_id": user.id,
                "amount": payment.amount,
                "status": payment.status.value,
            }
        )

    logger.info(
        "Manual court usage on %s %02d:00-%02d:00: %d pending payment(s) created by %s",
        usage_date,
        start_time,
        end_time,
        len(result.payments),
        actor.id,
    )
    return result


async def get_manual_usage_history(db: AsyncSession) -> list[dict]:
    """Manual payments grouped into the sessions they were entered as, newest first."""
    result = await db.execute(
        select(Payment, User)
        .join(User, User.id == Payment.user_id)
        .order_by(Payment.created_at.desc(), Payment.id)
    )

    sessions: dict[str, dict] = {}
    for payment, user in result.all():
        meta = payment.meta or {}
        if not meta.get("is_manual_payment"):
            continue
        created_at = as_utc(payment.created_at)
        key = meta.get("manual_session_id") or (
            f"{meta.get('court_usage_date')}_{meta.get('time_slot')}_{created_at.isoformat()}"
        )
        session = sessions.setdefault(
            key,
            {
                "session_id": key,
                "date": meta.get("court_usage_date"),
                "start_time": meta.get("start_time", meta.get("time_slot")),
                "end_time": meta.get("end_time"),
                "description": payment.description,
                "created_by": meta.get("created_by"),
                "created_at": created_at,
                "players": [],
                "total_amount": 0.0,
            },
        )
        session["players"].append(
            {
                "player_name": user.full_name,
                "amount": payment.amount,
                "status": payment.status.value,
                "payment_id": payment.id,
            }
        )
        session["total_amount"] = round(session["total_amount"] + payment.amount, 2)

    return sorted(sessions.values(), key=lambda s: s["created_at"], reverse=True)
