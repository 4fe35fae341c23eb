"""Reservation routes: create (with fee calculation), list, cancel, complete."""

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tennisclub.core.database import get_db
from tennisclub.core.dependencies import get_current_user, is_admin, require_admin
from tennisclub.models.member import User
from tennisclub.models.reservation import ACTIVE_STATUSES, Reservation, ReservationStatus, ReservationType
from tennisclub.schemas import ReservationCreate, ReservationOut
from tennisclub.services.booking_rules import validate_reservation
from tennisclub.services.member_matching import MatchConfig
from tennisclub.services.members import get_member_names
from tennisclub.services.pricing import PricingConfig, compute_fee

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reservations", tags=["reservations"])


async def _get_reservation(db: AsyncSession, reservation_id: int) -> Reservation:
    result = await db.execute(select(Reservation).where(Reservation.id == reservation_id))
    reservation = result.scalar_one_or_none()
    if not reservation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reservation not found")
    return reservation


@router.post("", response_model=ReservationOut, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    body: ReservationCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if body.reservation_type == ReservationType.BLOCKED and not is_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can block court time")

    violations = await validate_reservation(db, body.date, body.time_slot, body.duration)
    if violations:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=[{"rule": v.rule, "message": v.message} for v in violations],
        )

    players = [p.strip() for p in body.players if p.strip()]
    if body.reservation_type == ReservationType.BLOCKED:
        total_fee = 0.0
    elif body.total_fee is not None:
        total_fee = body.total_fee
    else:
        quote = compute_fee(
            body.time_slot,
            body.duration,
            players,
            await get_member_names(db),
            PricingConfig.from_settings(),
            MatchConfig.from_settings(),
        )
        total_fee = quote.amount

    reservation = Reservation(
        user_id=user.id,
        date=body.date,
        time_slot=body.time_slot,
        duration=body.duration,
        end_time_slot=body.time_slot + body.duration,
        players=players,
        total_fee=total_fee,
        reservation_type=body.reservation_type,
        status=ReservationStatus.CONFIRMED if body.reservation_type == ReservationType.BLOCKED else ReservationStatus.PENDING,
    )
    db.add(reservation)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race with a concurrent booking of the same start hour
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=[{"rule": "court_conflict", "message": "Court already booked for this time slot."}],
        ) from None

    logger.info(
        "Reservation %s created: %s %02d:00-%02d:00 fee %.2f",
        reservation.id,
        reservation.date,
        reservation.time_slot,
        reservation.end_time_slot,
        reservation.total_fee,
    )
    return reservation


@router.get("", response_model=list[ReservationOut])
async def list_reservations(
    on_date: date | None = Query(default=None, alias="date"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = select(Reservation)
    if not is_admin(user):
        query = query.where(Reservation.user_id == user.id)
    if on_date is not None:
        query = query.where(Reservation.date == on_date)
    result = await db.execute(query.order_by(Reservation.date.desc(), Reservation.time_slot).limit(100))
    return result.scalars().all()


@router.post("/{reservation_id}/cancel", response_model=ReservationOut)
async def cancel_reservation(
    reservation_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    reservation = await _get_reservation(db, reservation_id)
    if reservation.user_id != user.id and not is_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    if reservation.status not in ACTIVE_STATUSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Reservation cannot be cancelled")

    # Pending payments for it are failed later by the orphaned payment cleanup
    reservation.status = ReservationStatus.CANCELLED
    await db.flush()
    return reservation


@router.put("/{reservation_id}/complete", response_model=ReservationOut)
async def complete_reservation(
    reservation_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    reservation = await _get_reservation(db, reservation_id)
    if reservation.status == ReservationStatus.CANCELLED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cancelled reservations cannot be completed")
    reservation.status = ReservationStatus.COMPLETED
    await db.flush()
    return reservation
