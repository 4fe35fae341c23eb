"""Multi-hour payment reconciliation.

A two-hour booking is stored as hourly reservations, but players often pay
once for the whole block. The first reservation then carries a payment for
both hours while the second stays unpaid. This job finds such pairs and
splits the over-sized payment so every reservation is covered by its own
completed payment.

Runs after payment-affecting requests (FastAPI background task) with its own
session, commits after every split, and never raises.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tennisclub.core.config import settings
from tennisclub.core.database import async_session_factory
from tennisclub.models.base import utcnow
from tennisclub.models.payment import Payment, PaymentStatus
from tennisclub.models.reservation import (
    Reservation,
    ReservationPaymentStatus,
    ReservationStatus,
    ReservationType,
)
from tennisclub.services.payments import OPEN_STATUSES, append_note, due_date_for

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationSummary:
    user_id: int
    examined: int = 0
    fixed: int = 0
    splits: list[dict] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


async def _pending_candidates(db: AsyncSession, user_id: int, lookback: timedelta) -> list[Reservation]:
    result = await db.execute(
        select(Reservation)
        .where(
            Reservation.user_id == user_id,
            Reservation.payment_status == ReservationPaymentStatus.PENDING,
            Reservation.reservation_type == ReservationType.REGULAR,
            Reservation.status != ReservationStatus.CANCELLED,
            Reservation.total_fee > 0,
            Reservation.created_at >= utcnow() - lookback,
        )
        .order_by(Reservation.date, Reservation.time_slot)
    )
    return list(result.scalars().all())


async def _paid_siblings(db: AsyncSession, reservation: Reservation) -> list[Reservation]:
    """Same user, same day, same players, same fee, already paid."""
    result = await db.execute(
        select(Reservation)
        .where(
            Reservation.user_id == reservation.user_id,
            Reservation.date == reservation.date,
            Reservation.id != reservation.id,
            Reservation.payment_status == ReservationPaymentStatus.PAID,
            Reservation.status != ReservationStatus.CANCELLED,
            Reservation.total_fee == reservation.total_fee,
        )
        .order_by(Reservation.time_slot)
    )
    players = list(reservation.players or [])
    return [r for r in result.scalars().all() if list(r.players or []) == players]


async def _oversized_payment(db: AsyncSession, sibling: Reservation, fee: float) -> Payment | None:
    # Re-read every time: an earlier split in this run may have reduced it
    result = await db.execute(
        select(Payment)
        .where(
            Payment.reservation_id == str(sibling.id),
            Payment.status == PaymentStatus.COMPLETED,
            Payment.amount > fee,
        )
        .order_by(Payment.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _has_open_payment(db: AsyncSession, reservation: Reservation) -> bool:
    result = await db.execute(
        select(Payment.id).where(
            Payment.reservation_id == str(reservation.id),
            Payment.status.in_(OPEN_STATUSES),
        )
    )
    return result.first() is not None


async def _split_for(db: AsyncSession, reservation: Reservation) -> dict | None:
    if await _has_open_payment(db, reservation):
        return None

    fee = reservation.total_fee
    for sibling in await _paid_siblings(db, reservation):
        source = await _oversized_payment(db, sibling, fee)
        if source is None:
            continue

        original_amount = source.amount
        source.amount = round(original_amount - fee, 2)
        source.notes = append_note(
            source.notes,
            f"Multi-hour split: {fee:.2f} moved to the {reservation.time_slot:02d}:00 reservation",
        )
        source.meta = {
            **(source.meta or {}),
            "multi_hour_splits": [
                *(source.meta or {}).get("multi_hour_splits", []),
                {"reservation_id": str(reservation.id), "amount": fee},
            ],
        }

        split = Payment(
            user_id=source.user_id,
            reservation_id=str(reservation.id),
            amount=fee,
            currency=source.currency,
            payment_method=source.payment_method,
            status=PaymentStatus.COMPLETED,
            transaction_id=source.transaction_id,
            reference_number=f"{source.reference_number}-MH{reservation.time_slot}",
            payment_date=source.payment_date or utcnow(),
            due_date=due_date_for(reservation.date),
            description=(
                f"Court reservation {reservation.date.isoformat()} "
                f"{reservation.time_slot:02d}:00-{reservation.end_time_slot:02d}:00"
            ),
            notes=f"Split from payment {source.reference_number}",
            meta={
                "court_usage_date": reservation.date.isoformat(),
                "time_slot": reservation.time_slot,
                "split_from_payment_id": source.id,
                "auto_fixed": True,
            },
        )
        db.add(split)
        reservation.payment_status = ReservationPaymentStatus.PAID
        await db.flush()

        return {
            "reservation_id": reservation.id,
            "source_payment_id": source.id,
            "source_amount_before": original_amount,
            "source_amount_after": source.amount,
            "new_payment_id": split.id,
            "amount": fee,
        }
    return None


async def reconcile_multi_hour_payments(
    db: AsyncSession, user_id: int, lookback: timedelta | None = None
) -> ReconciliationSummary:
    """Split over-sized payments across the user's unpaid hourly reservations."""
    lookback = lookback or timedelta(hours=settings.reconcile_lookback_hours)
    summary = ReconciliationSummary(user_id=user_id)

    for reservation in await _pending_candidates(db, user_id, lookback):
        reservation_id = reservation.id
        summary.examined += 1
        try:
            split = await _split_for(db, reservation)
            if split is None:
                continue
            await db.commit()
        except Exception as exc:
            await db.rollback()
            logger.exception("Multi-hour reconciliation failed for reservation %s", reservation_id)
            summary.errors.append(f"reservation {reservation_id}: {exc}")
            break

        summary.fixed += 1
        summary.splits.append(split)
        logger.info(
            "Multi-hour split: payment %s reduced to %.2f, new payment %s covers reservation %s",
            split["source_payment_id"],
            split["source_amount_after"],
            split["new_payment_id"],
            reservation_id,
        )

    return summary


async def run_multi_hour_reconciliation(user_id: int) -> ReconciliationSummary | None:
    """Background-task entry point with its own session."""
    try:
        async with async_session_factory() as db:
            return await reconcile_multi_hour_payments(db, user_id)
    except Exception:
        logger.exception("Multi-hour reconciliation could not run for user %s", user_id)
        return None
