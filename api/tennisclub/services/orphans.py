"""Maintenance jobs for payments that lost track of their reservation.

cleanup_orphaned_payments fails pending payments whose reservation was
deleted, cancelled or already completed. cleanup_duplicate_payments removes
pending payments for reservations that already have a completed one.

Both are operator-triggered (script, Celery task or admin endpoint), log
every change and report what they did instead of raising. An orphan check that
fails is logged and the run moves on to the next payment. A duplicate removal
that fails rolls the whole run back, since earlier deletes share its
transaction.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tennisclub.models.base import utcnow
from tennisclub.models.payment import Payment, PaymentStatus
from tennisclub.models.reservation import Reservation, ReservationStatus
from tennisclub.services.payments import get_reservation

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system_cleanup"


@dataclass
class CleanupReport:
    examined: int = 0
    cleaned: int = 0
    skipped: int = 0
    items: list[dict] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def _orphan_reason(reservation: Reservation | None) -> str | None:
    if reservation is None:
        return "Reservation no longer exists"
    if reservation.status == ReservationStatus.CANCELLED:
        return "Reservation was cancelled"
    if reservation.status == ReservationStatus.COMPLETED:
        return "Reservation already completed"
    return None


async def cleanup_orphaned_payments(db: AsyncSession) -> CleanupReport:
    """Fail pending reservation payments whose reservation has moved on."""
    report = CleanupReport()
    try:
        result = await db.execute(
            select(Payment)
            .where(Payment.status == PaymentStatus.PENDING, Payment.reservation_id.is_not(None))
            .order_by(Payment.id)
        )
        payments = list(result.scalars().all())
    except Exception as exc:
        await db.rollback()
        logger.exception("Orphaned payment cleanup could not load pending payments")
        report.errors.append(str(exc))
        return report

    for payment in payments:
        payment_id = payment.id
        report.examined += 1
        # Poll and manual payments are not tied to a reservation lifecycle
        if payment.poll_id or payment.is_manual:
            report.skipped += 1
            continue

        try:
            reservation = await get_reservation(db, payment.reservation_id)
        except Exception as exc:
            logger.exception("Orphan check failed for payment %s", payment_id)
            report.errors.append(f"payment {payment_id}: {exc}")
            continue

        reason = _orphan_reason(reservation)
        if reason is None:
            report.skipped += 1
            continue

        payment.status = PaymentStatus.FAILED
        payment.meta = {
            **(payment.meta or {}),
            "cancellation": {
                "reason": f"Orphaned payment: {reason}",
                "cancelled_by": SYSTEM_ACTOR,
                "cancelled_at": utcnow().isoformat(),
                "previous_status": PaymentStatus.PENDING.value,
            },
        }
        report.cleaned += 1
        report.items.append(
            {
                "payment_id": payment.id,
                "reservation_id": payment.reservation_id,
                "amount": payment.amount,
                "reason": reason,
            }
        )
        logger.info("Orphaned payment %s failed: %s", payment.id, reason)

    try:
        await db.commit()
    except Exception as exc:
        await db.rollback()
        logger.exception("Orphaned payment cleanup could not be saved")
        report.errors.append(str(exc))
        report.cleaned = 0
        report.items = []

    logger.info(
        "Orphaned payment cleanup: %d examined, %d cleaned, %d skipped",
        report.examined,
        report.cleaned,
        report.skipped,
    )
    return report


async def cleanup_duplicate_payments(db: AsyncSession) -> CleanupReport:
    """Delete pending payments for reservations that already have a completed payment."""
    report = CleanupReport()
    reservation_id = None
    try:
        completed = await db.execute(
            select(Payment.reservation_id)
            .where(Payment.status == PaymentStatus.COMPLETED, Payment.reservation_id.is_not(None))
            .distinct()
        )
        paid_reservations = [rid for (rid,) in completed.all()]

        for reservation_id in paid_reservations:
            report.examined += 1
            result = await db.execute(
                select(Payment).where(
                    Payment.reservation_id == reservation_id,
                    Payment.status == PaymentStatus.PENDING,
                )
            )
            duplicates = list(result.scalars().all())
            if not duplicates:
                report.skipped += 1
                continue
            for duplicate in duplicates:
                report.items.append(
                    {"payment_id": duplicate.id, "reservation_id": reservation_id, "amount": duplicate.amount}
                )
                logger.info("Removing duplicate pending payment %s for reservation %s", duplicate.id, reservation_id)
            await db.execute(delete(Payment).where(Payment.id.in_([d.id for d in duplicates])))
            report.cleaned += len(duplicates)

        await db.commit()
    except Exception as exc:
        await db.rollback()
        logger.exception("Duplicate payment cleanup failed at reservation %s", reservation_id)
        report.errors.append(f"reservation {reservation_id}: {exc}" if reservation_id else str(exc))
        report.cleaned = 0
        report.items = []

    return report
