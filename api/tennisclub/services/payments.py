"""Payment ledger: creation, the approval workflow, and payment queries.

Status flow:

    pending   -> completed (approve, process), failed (cancel)
    completed -> record (record), refunded (cancel), failed
    record    -> completed (unrecord)

failed and refunded are terminal. Every transition is checked against
ALLOWED_TRANSITIONS and anything else raises StateConflictError.

Recording feeds the court usage report inside the same transaction; a failure
there is logged and never undoes the transition itself. Notifications are
queued on the session and only go out once the caller has committed (see
notifications.drain). The financial report file is rewritten after commit.
"""

import logging
import secrets
import string
import time
from datetime import UTC, date, datetime, timedelta
from datetime import time as dt_time

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tennisclub.core.config import settings
from tennisclub.core.errors import InvalidRequestError, NotFoundError, PermissionDeniedError, StateConflictError
from tennisclub.models.base import utcnow
from tennisclub.models.member import User, UserRole
from tennisclub.models.payment import Payment, PaymentMethod, PaymentStatus
from tennisclub.models.reservation import (
    Reservation,
    ReservationPaymentStatus,
    ReservationStatus,
    ReservationType,
)
from tennisclub.services import notifications
from tennisclub.services.coins import debit_coins
from tennisclub.services.member_matching import MatchConfig
from tennisclub.services.members import get_member_names
from tennisclub.services.pricing import PricingConfig, compute_fee
from tennisclub.services.usage_report import apply_recorded_payment, reverse_recorded_payment

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.RECORD, PaymentStatus.REFUNDED, PaymentStatus.FAILED}),
    PaymentStatus.RECORD: frozenset({PaymentStatus.COMPLETED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

# Statuses that count as "this reservation already has a payment"
OPEN_STATUSES = (PaymentStatus.PENDING, PaymentStatus.COMPLETED)

TRUNCATION_PREFIX = "TRUNCATED: ..."

_REFERENCE_ALPHABET = string.digits + string.ascii_uppercase


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _is_admin(user: User) -> bool:
    return user.role in (UserRole.ADMIN, UserRole.SUPERADMIN)


def _require_admin(user: User) -> None:
    if not _is_admin(user):
        raise PermissionDeniedError("Admin access required")


def _require_owner_or_admin(payment: Payment, user: User) -> None:
    if not _is_admin(user) and payment.user_id != user.id:
        raise PermissionDeniedError("Access denied")


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def check_transition(payment: Payment, target: PaymentStatus) -> None:
    if not can_transition(payment.status, target):
        raise StateConflictError(
            f"Cannot change payment from {payment.status.value} to {target.value}",
            {"current_status": payment.status.value, "requested_status": target.value},
        )


def generate_reference() -> str:
    """TC-<epoch millis>-<6 random base36 chars>."""
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(6))
    return f"TC-{int(time.time() * 1000)}-{suffix}"


def append_note(existing: str | None, note: str, limit: int | None = None) -> str:
    """Append a line to the notes, keeping the most recent text within the limit."""
    limit = limit or settings.notes_max_length
    combined = f"{existing}\n{note}" if existing else note
    if len(combined) > limit:
        return TRUNCATION_PREFIX + combined[-(limit - len(TRUNCATION_PREFIX) - 1):]
    return combined


def due_date_for(usage_date: date) -> datetime:
    """Payments fall due the day after the court was used."""
    return datetime.combine(usage_date + timedelta(days=1), dt_time.min, tzinfo=UTC)


def _event_payload(payment: Payment, actor: User | None = None) -> dict:
    payload = {
        "payment_id": payment.id,
        "user_id": payment.user_id,
        "amount": payment.amount,
        "status": payment.status.value,
        "reservation_id": payment.reservation_id,
        "reference_number": payment.reference_number,
    }
    if actor is not None:
        payload["actor_id"] = actor.id
    return payload


def _parse_id(raw: str | int | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


async def get_reservation(db: AsyncSession, reservation_id: str | int | None) -> Reservation | None:
    rid = _parse_id(reservation_id)
    if rid is None:
        return None
    result = await db.execute(select(Reservation).where(Reservation.id == rid))
    return result.scalar_one_or_none()


async def _set_reservation_payment_status(
    db: AsyncSession, payment: Payment, payment_status: ReservationPaymentStatus
) -> None:
    reservation = await get_reservation(db, payment.reservation_id)
    if reservation is not None:
        reservation.payment_status = payment_status


async def _load_payment(db: AsyncSession, payment_id: int) -> Payment:
    result = await db.execute(select(Payment).where(Payment.id == payment_id))
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFoundError("Payment", payment_id)
    return payment


async def _find_open_payment(db: AsyncSession, reservation_id: str) -> Payment | None:
    result = await db.execute(
        select(Payment)
        .where(Payment.reservation_id == reservation_id, Payment.status.in_(OPEN_STATUSES))
        .order_by(Payment.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _debit_for(db: AsyncSession, payment: Payment) -> None:
    """Settle a coin payment from the payer's wallet."""
    payment.transaction_id = await debit_coins(
        db,
        payment.user_id,
        payment.amount,
        payment_id=payment.id,
        description=f"Court payment {payment.reference_number}",
    )


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def create_payment(
    db: AsyncSession,
    actor: User,
    *,
    payment_method: PaymentMethod,
    reservation_id: str | None = None,
    poll_id: str | None = None,
    amount: float | None = None,
    custom_amount: float | None = None,
    is_manual_payment: bool = False,
    player_names: list[str] | None = None,
    court_usage_date: date | None = None,
    status: PaymentStatus | None = None,
    currency: str | None = None,
    transaction_id: str | None = None,
    reference_number: str | None = None,
    description: str | None = None,
    notes: str | None = None,
) -> tuple[Payment, bool]:
    """Create a payment, or update the open one when an admin pays again.

    Returns (payment, created). created is False when an admin request was
    redirected to an existing pending/completed payment for the reservation.
    """
    initial_status = status or PaymentStatus.COMPLETED
    if initial_status not in OPEN_STATUSES:
        raise InvalidRequestError("New payments must be pending or completed")

    meta: dict = {}
    reservation = None

    if is_manual_payment:
        if reservation_id or poll_id:
            raise InvalidRequestError("Manual payments cannot reference a reservation or poll")
        if not player_names or not any(p.strip() for p in player_names):
            raise InvalidRequestError("Manual payments require at least one player name")
        if court_usage_date is None:
            raise InvalidRequestError("Manual payments require a court usage date")
        usage_date = court_usage_date
        meta.update(
            {
                "is_manual_payment": True,
                "player_names": [p.strip() for p in player_names if p.strip()],
                "court_usage_date": usage_date.isoformat(),
                "created_by": actor.full_name,
            }
        )
    elif reservation_id and poll_id:
        raise InvalidRequestError("A payment cannot reference both a reservation and a poll")
    elif reservation_id:
        reservation = await get_reservation(db, reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation", reservation_id)
        if not _is_admin(actor) and reservation.user_id != actor.id:
            raise PermissionDeniedError("You can only pay for your own reservations")
        if reservation.reservation_type == ReservationType.BLOCKED:
            raise InvalidRequestError("Blocked court time does not take payments")
        if reservation.status == ReservationStatus.CANCELLED:
            raise InvalidRequestError("Cannot pay for a cancelled reservation")

        reservation_id = str(reservation.id)
        existing = await _find_open_payment(db, reservation_id)
        if existing is not None:
            if not _is_admin(actor):
                raise InvalidRequestError("A payment already exists for this reservation")
            logger.info("Admin %s paying reservation %s again, updating payment %s", actor.id, reservation_id, existing.id)
            updated = await update_payment(
                db,
                existing.id,
                actor,
                payment_method=payment_method,
                custom_amount=custom_amount,
                transaction_id=transaction_id,
                reference_number=reference_number,
                notes=notes,
            )
            return updated, False

        usage_date = reservation.date
        meta.update(
            {
                "court_usage_date": reservation.date.isoformat(),
                "time_slot": reservation.time_slot,
                "end_time_slot": reservation.end_time_slot,
                "players": list(reservation.players or []),
            }
        )
    elif poll_id:
        if amount is None and custom_amount is None:
            raise InvalidRequestError("Open play payments require an amount")
        usage_date = utcnow().date()
    else:
        raise InvalidRequestError("A reservation, poll or manual payment details are required")

    payer_id = actor.id if reservation is None else reservation.user_id

    # Amount: explicit override, then supplied amount, then the fee calculator
    if custom_amount is not None:
        payment_amount = custom_amount
        if _is_admin(actor):
            meta["is_admin_override"] = True
            meta["original_fee"] = reservation.total_fee if reservation is not None else amount
            if not notes:
                notes = f"Admin override: Custom amount {custom_amount:.2f} set by {actor.full_name}"
    elif amount is not None:
        payment_amount = amount
    elif reservation is not None:
        quote = compute_fee(
            reservation.time_slot,
            reservation.duration,
            reservation.players or [],
            await get_member_names(db),
            PricingConfig.from_settings(),
            MatchConfig.from_settings(),
        )
        payment_amount = quote.amount
        meta["is_peak_hour"] = quote.is_peak_hour
        meta["fee_breakdown"] = quote.breakdown
    else:
        raise InvalidRequestError("Payment amount is required")

    if payment_amount is None or payment_amount <= 0:
        raise InvalidRequestError("Payment amount must be greater than zero")

    if description is None:
        if reservation is not None:
            description = (
                f"Court reservation {reservation.date.isoformat()} "
                f"{reservation.time_slot:02d}:00-{reservation.end_time_slot:02d}:00"
            )
        elif is_manual_payment:
            description = f"Court usage on {usage_date.isoformat()}"
        else:
            description = "Open play"

    now = utcnow()
    payment = Payment(
        user_id=payer_id,
        reservation_id=reservation_id if reservation is not None else None,
        poll_id=poll_id,
        amount=round(payment_amount, 2),
        currency=currency or settings.currency,
        payment_method=payment_method,
        status=initial_status,
        transaction_id=transaction_id,
        reference_number=reference_number or generate_reference(),
        payment_date=now if initial_status == PaymentStatus.COMPLETED else None,
        due_date=due_date_for(usage_date),
        description=description[:200],
        notes=append_note(None, notes) if notes else None,
        meta=meta,
    )
    db.add(payment)
    await db.flush()

    if initial_status == PaymentStatus.COMPLETED:
        if payment_method == PaymentMethod.COINS:
            await _debit_for(db, payment)
        if reservation is not None:
            reservation.payment_status = ReservationPaymentStatus.PAID

    await db.flush()
    logger.info(
        "Payment %s created: %.2f %s via %s (%s) by user %s",
        payment.id,
        payment.amount,
        payment.currency,
        payment.payment_method.value,
        payment.status.value,
        actor.id,
    )
    return payment, True


# ---------------------------------------------------------------------------
# Workflow transitions
# ---------------------------------------------------------------------------


async def approve_payment(db: AsyncSession, payment_id: int, actor: User, notes: str | None = None) -> Payment:
    """Admin confirms a pending payment was received."""
    _require_admin(actor)
    payment = await _load_payment(db, payment_id)
    if payment.status != PaymentStatus.PENDING:
        raise StateConflictError("Only pending payments can be approved")
    check_transition(payment, PaymentStatus.COMPLETED)

    now = utcnow()
    payment.status = PaymentStatus.COMPLETED
    payment.payment_date = now
    payment.approved_by = actor.id
    payment.approved_at = now
    if notes:
        payment.notes = append_note(payment.notes, f"Approved by {actor.full_name}: {notes}")

    await _set_reservation_payment_status(db, payment, ReservationPaymentStatus.PAID)
    await db.flush()

    logger.info("Payment %s approved by %s", payment.id, actor.id)
    notifications.queue(db, notifications.PAYMENT_APPROVED, _event_payload(payment, actor))
    return payment


async def process_payment(
    db: AsyncSession,
    payment_id: int,
    actor: User,
    transaction_id: str | None = None,
    reference_number: str | None = None,
    notes: str | None = None,
) -> Payment:
    """The payer (or an admin) completes a pending payment."""
    payment = await _load_payment(db, payment_id)
    _require_owner_or_admin(payment, actor)
    if payment.status != PaymentStatus.PENDING:
        raise StateConflictError("Payment is not pending")
    check_transition(payment, PaymentStatus.COMPLETED)

    if transaction_id:
        payment.transaction_id = transaction_id
    if reference_number:
        payment.reference_number = reference_number
    if payment.payment_method == PaymentMethod.COINS:
        await _debit_for(db, payment)

    payment.status = PaymentStatus.COMPLETED
    payment.payment_date = utcnow()
    if notes:
        payment.notes = append_note(payment.notes, notes)

    await _set_reservation_payment_status(db, payment, ReservationPaymentStatus.PAID)
    await db.flush()

    logger.info("Payment %s processed by %s", payment.id, actor.id)
    notifications.queue(db, notifications.PAYMENT_COMPLETED, _event_payload(payment, actor))
    return payment


async def _run_side_effect(db: AsyncSession, label: str, payment: Payment, apply) -> None:
    """Run a usage-report change in a SAVEPOINT; a failure rolls back only that change."""
    try:
        async with db.begin_nested():
            await apply(db, payment)
    except Exception:
        logger.exception("%s failed for payment %s", label, payment.id)


async def record_payment(db: AsyncSession, payment_id: int, actor: User, notes: str | None = None) -> Payment:
    """Enter a completed payment into the club's books."""
    _require_admin(actor)
    payment = await _load_payment(db, payment_id)
    if payment.status != PaymentStatus.COMPLETED:
        raise StateConflictError("Only completed payments can be recorded")
    check_transition(payment, PaymentStatus.RECORD)

    payment.status = PaymentStatus.RECORD
    payment.recorded_by = actor.id
    payment.recorded_at = utcnow()
    if notes:
        payment.notes = append_note(payment.notes, f"Recorded by {actor.full_name}: {notes}")
    await db.flush()

    await _run_side_effect(db, "Usage report update", payment, apply_recorded_payment)

    logger.info("Payment %s recorded by %s", payment.id, actor.id)
    notifications.queue(db, notifications.PAYMENT_RECORDED, _event_payload(payment, actor))
    return payment


async def unrecord_payment(db: AsyncSession, payment_id: int, actor: User, notes: str | None = None) -> Payment:
    """Take a recorded payment back out of the books so it can be edited."""
    _require_admin(actor)
    payment = await _load_payment(db, payment_id)
    if payment.status != PaymentStatus.RECORD:
        raise StateConflictError("Only recorded payments can be unrecorded")
    check_transition(payment, PaymentStatus.COMPLETED)

    payment.status = PaymentStatus.COMPLETED
    payment.recorded_by = None
    payment.recorded_at = None
    if notes:
        payment.notes = append_note(payment.notes, f"Unrecorded by {actor.full_name}: {notes}")
    await db.flush()

    await _run_side_effect(db, "Usage report reversal", payment, reverse_recorded_payment)

    logger.info("Payment %s unrecorded by %s", payment.id, actor.id)
    notifications.queue(db, notifications.PAYMENT_UNRECORDED, _event_payload(payment, actor))
    return payment


async def cancel_payment(db: AsyncSession, payment_id: int, actor: User, reason: str | None = None) -> Payment:
    """Cancel a payment: completed ones are refunded, pending ones fail."""
    payment = await _load_payment(db, payment_id)
    _require_owner_or_admin(payment, actor)

    if payment.status == PaymentStatus.COMPLETED:
        target = PaymentStatus.REFUNDED
    elif payment.status == PaymentStatus.PENDING:
        target = PaymentStatus.FAILED
    elif payment.status == PaymentStatus.RECORD:
        raise StateConflictError("Recorded payments cannot be cancelled. Use unrecord feature first.")
    else:
        raise StateConflictError(f"Payment is already {payment.status.value}")
    check_transition(payment, target)

    previous = payment.status
    payment.status = target
    payment.meta = {
        **(payment.meta or {}),
        "cancellation": {
            "reason": reason or "Cancelled",
            "cancelled_by": actor.full_name,
            "cancelled_by_id": actor.id,
            "cancelled_at": utcnow().isoformat(),
            "previous_status": previous.value,
        },
    }

    await _set_reservation_payment_status(db, payment, ReservationPaymentStatus.PENDING)
    await db.flush()

    logger.info("Payment %s cancelled by %s (%s -> %s)", payment.id, actor.id, previous.value, target.value)
    notifications.queue(db, notifications.PAYMENT_CANCELLED, _event_payload(payment, actor))
    return payment


async def update_payment(
    db: AsyncSession,
    payment_id: int,
    actor: User,
    *,
    payment_method: PaymentMethod | None = None,
    transaction_id: str | None = None,
    reference_number: str | None = None,
    custom_amount: float | None = None,
    notes: str | None = None,
) -> Payment:
    """Edit payment details without changing its status."""
    payment = await _load_payment(db, payment_id)
    _require_owner_or_admin(payment, actor)

    if payment.status == PaymentStatus.RECORD:
        raise StateConflictError("Recorded payments cannot be edited. Use unrecord feature first.")
    if _is_admin(actor):
        if payment.status not in (PaymentStatus.PENDING, PaymentStatus.COMPLETED, PaymentStatus.FAILED):
            raise StateConflictError(f"Cannot edit {payment.status.value} payments")
    elif payment.status != PaymentStatus.PENDING:
        raise StateConflictError("Only pending payments can be updated")

    if payment_method is not None:
        payment.payment_method = payment_method
    if transaction_id:
        payment.transaction_id = transaction_id
    if reference_number:
        payment.reference_number = reference_number

    if custom_amount is not None:
        if custom_amount <= 0:
            raise InvalidRequestError("Payment amount must be greater than zero")
        meta = dict(payment.meta or {})
        meta.setdefault("original_fee", payment.amount)
        meta["is_admin_override"] = True
        payment.meta = meta
        label = "Admin override" if _is_admin(actor) else "Custom amount"
        payment.notes = append_note(
            payment.notes,
            f"{label}: amount changed from {payment.amount:.2f} to {custom_amount:.2f} by {actor.full_name}",
        )
        payment.amount = round(custom_amount, 2)

    if notes:
        payment.notes = append_note(payment.notes, notes)

    await db.flush()
    logger.info("Payment %s updated by %s", payment.id, actor.id)
    return payment


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_payment(db: AsyncSession, payment_id: int, actor: User) -> Payment:
    payment = await _load_payment(db, payment_id)
    _require_owner_or_admin(payment, actor)
    return payment


async def list_payments(
    db: AsyncSession,
    actor: User,
    *,
    status: PaymentStatus | None = None,
    payment_method: PaymentMethod | None = None,
    user_id: int | None = None,
    mine: bool = False,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Payment], int]:
    """Page through payments, newest first. Members only ever see their own."""
    conditions = []
    if mine or not _is_admin(actor):
        conditions.append(Payment.user_id == actor.id)
    elif user_id is not None:
        conditions.append(Payment.user_id == user_id)
    if status is not None:
        conditions.append(Payment.status == status)
    if payment_method is not None:
        conditions.append(Payment.payment_method == payment_method)

    total = (await db.execute(select(func.count(Payment.id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Payment)
        .where(*conditions)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .offset((max(page, 1) - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def get_overdue_payments(db: AsyncSession) -> list[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.status == PaymentStatus.PENDING, Payment.due_date < utcnow())
        .order_by(Payment.due_date)
    )
    return list(result.scalars().all())


async def get_payment_stats(db: AsyncSession) -> dict:
    """Counts and totals by status and by method."""
    by_status = await db.execute(
        select(Payment.status, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0)).group_by(
            Payment.status
        )
    )
    by_method = await db.execute(
        select(Payment.payment_method, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
        .where(Payment.status.in_((PaymentStatus.COMPLETED, PaymentStatus.RECORD)))
        .group_by(Payment.payment_method)
    )

    status_totals = {s.value: {"count": c, "amount": round(float(a), 2)} for s, c, a in by_status.all()}
    method_totals = {m.value: {"count": c, "amount": round(float(a), 2)} for m, c, a in by_method.all()}
    revenue = sum(status_totals.get(s, {}).get("amount", 0.0) for s in ("completed", "record"))
    overdue = await get_overdue_payments(db)

    return {
        "by_status": status_totals,
        "by_method": method_totals,
        "total_revenue": round(revenue, 2),
        "pending_count": status_totals.get("pending", {}).get("count", 0),
        "overdue_count": len(overdue),
    }
