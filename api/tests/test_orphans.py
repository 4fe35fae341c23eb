"""Orphaned and duplicate payment cleanup tests."""

from datetime import date

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from tennisclub.models import Payment, PaymentMethod, PaymentStatus, ReservationStatus
from tennisclub.services.orphans import SYSTEM_ACTOR, cleanup_duplicate_payments, cleanup_orphaned_payments
from tennisclub.services.payments import due_date_for, generate_reference

PLAY_DATE = date(2025, 3, 14)


def _payment(user, reservation_id=None, status=PaymentStatus.PENDING, amount=100.0, **kwargs) -> Payment:
    return Payment(
        user_id=user.id,
        reservation_id=str(reservation_id) if reservation_id is not None else None,
        amount=amount,
        payment_method=PaymentMethod.CASH,
        status=status,
        reference_number=generate_reference(),
        due_date=due_date_for(PLAY_DATE),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_orphaned_payments_are_failed(db, people, make_reservation):
    cancelled = await make_reservation(people.john, PLAY_DATE, 9, status=ReservationStatus.CANCELLED)
    completed = await make_reservation(people.john, PLAY_DATE, 10, status=ReservationStatus.COMPLETED)
    active = await make_reservation(people.john, PLAY_DATE, 11)

    orphans = [
        _payment(people.john, cancelled.id),
        _payment(people.john, completed.id),
        _payment(people.john, 999),
    ]
    keep = _payment(people.john, active.id)
    db.add_all([*orphans, keep])
    await db.commit()

    report = await cleanup_orphaned_payments(db)

    assert report.examined == 4
    assert report.cleaned == 3
    assert report.skipped == 1
    assert report.errors == []
    assert {item["reason"] for item in report.items} == {
        "Reservation was cancelled",
        "Reservation already completed",
        "Reservation no longer exists",
    }
    for payment in orphans:
        assert payment.status == PaymentStatus.FAILED
        assert payment.meta["cancellation"]["cancelled_by"] == SYSTEM_ACTOR
        assert payment.meta["cancellation"]["previous_status"] == "pending"
    assert keep.status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_failed_orphan_check_is_reported(db, people, make_reservation):
    cancelled = await make_reservation(people.john, PLAY_DATE, 9, status=ReservationStatus.CANCELLED)
    payment = _payment(people.john, cancelled.id)
    db.add(payment)
    await db.commit()

    with patch(
        "tennisclub.services.orphans.get_reservation", new_callable=AsyncMock, side_effect=RuntimeError("db down")
    ):
        report = await cleanup_orphaned_payments(db)

    assert report.examined == 1
    assert report.cleaned == 0
    assert report.errors == [f"payment {payment.id}: db down"]
    assert payment.status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_poll_and_manual_payments_are_left_alone(db, people):
    poll = _payment(people.john, 999, poll_id="poll-1")
    manual = _payment(people.maria, 999, meta={"is_manual_payment": True})
    db.add_all([poll, manual])
    await db.commit()

    report = await cleanup_orphaned_payments(db)

    assert report.cleaned == 0
    assert report.skipped == 2
    assert poll.status == PaymentStatus.PENDING
    assert manual.status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_only_pending_payments_are_examined(db, people):
    db.add(_payment(people.john, 999, status=PaymentStatus.COMPLETED))
    await db.commit()

    report = await cleanup_orphaned_payments(db)
    assert report.examined == 0


@pytest.mark.asyncio
async def test_duplicate_pending_payments_are_removed(db, people, make_reservation):
    reservation = await make_reservation(people.john, PLAY_DATE, 9)
    other = await make_reservation(people.maria, PLAY_DATE, 10)
    paid = _payment(people.john, reservation.id, status=PaymentStatus.COMPLETED)
    duplicate = _payment(people.john, reservation.id)
    unrelated = _payment(people.maria, other.id)
    db.add_all([paid, duplicate, unrelated])
    await db.commit()
    duplicate_id = duplicate.id

    report = await cleanup_duplicate_payments(db)

    assert report.cleaned == 1
    assert report.items[0]["payment_id"] == duplicate_id
    remaining = (await db.execute(select(Payment.id).order_by(Payment.id))).scalars().all()
    assert remaining == [paid.id, unrelated.id]


@pytest.mark.asyncio
async def test_failed_duplicate_removal_is_reported(db, people, make_reservation):
    reservation = await make_reservation(people.john, PLAY_DATE, 9)
    paid = _payment(people.john, reservation.id, status=PaymentStatus.COMPLETED)
    duplicate = _payment(people.john, reservation.id)
    db.add_all([paid, duplicate])
    await db.commit()
    payment_ids = [paid.id, duplicate.id]

    with patch("tennisclub.services.orphans.delete", side_effect=RuntimeError("table locked")):
        report = await cleanup_duplicate_payments(db)

    assert report.cleaned == 0
    assert report.items == []
    assert report.errors == [f"reservation {reservation.id}: table locked"]
    remaining = (await db.execute(select(Payment.id).order_by(Payment.id))).scalars().all()
    assert remaining == payment_ids
