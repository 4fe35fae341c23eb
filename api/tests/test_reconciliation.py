"""Multi-hour payment reconciliation tests."""

from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from tennisclub.models import Payment, PaymentMethod, PaymentStatus, ReservationPaymentStatus
from tennisclub.models.base import utcnow
from tennisclub.services.payments import create_payment
from tennisclub.services.reconciliation import reconcile_multi_hour_payments, run_multi_hour_reconciliation

PLAY_DATE = date(2025, 3, 14)
PAIR = ["John Dela Cruz", "Maria Santos"]


async def _pay(db, user, reservation, amount):
    payment, _ = await create_payment(
        db, user, payment_method=PaymentMethod.GCASH, reservation_id=str(reservation.id), amount=amount
    )
    await db.commit()
    return payment


async def _payments_for(db, reservation) -> list[Payment]:
    result = await db.execute(
        select(Payment).where(Payment.reservation_id == str(reservation.id)).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_two_hour_payment_is_split(db, people, make_reservation):
    first = await make_reservation(people.john, PLAY_DATE, 17, players=PAIR)
    second = await make_reservation(people.john, PLAY_DATE, 18, players=PAIR)
    source = await _pay(db, people.john, first, 200)

    summary = await reconcile_multi_hour_payments(db, people.john.id)

    assert summary.fixed == 1
    assert summary.errors == []
    assert source.amount == 100
    assert source.meta["multi_hour_splits"] == [{"reservation_id": str(second.id), "amount": 100.0}]
    assert "Multi-hour split" in source.notes
    assert second.payment_status == ReservationPaymentStatus.PAID

    [split] = await _payments_for(db, second)
    assert split.amount == 100
    assert split.status == PaymentStatus.COMPLETED
    assert split.payment_method == PaymentMethod.GCASH
    assert split.reference_number == f"{source.reference_number}-MH18"
    assert split.meta["split_from_payment_id"] == source.id


@pytest.mark.asyncio
async def test_reconciliation_is_idempotent(db, people, make_reservation):
    first = await make_reservation(people.john, PLAY_DATE, 17, players=PAIR)
    second = await make_reservation(people.john, PLAY_DATE, 18, players=PAIR)
    await _pay(db, people.john, first, 200)

    await reconcile_multi_hour_payments(db, people.john.id)
    again = await reconcile_multi_hour_payments(db, people.john.id)

    assert again.fixed == 0
    assert len(await _payments_for(db, second)) == 1


@pytest.mark.asyncio
async def test_three_hour_block(db, people, make_reservation):
    first = await make_reservation(people.john, PLAY_DATE, 8, players=PAIR)
    await make_reservation(people.john, PLAY_DATE, 9, players=PAIR)
    await make_reservation(people.john, PLAY_DATE, 10, players=PAIR)
    source = await _pay(db, people.john, first, 300)

    summary = await reconcile_multi_hour_payments(db, people.john.id)

    assert summary.fixed == 2
    assert source.amount == 100
    assert len(source.meta["multi_hour_splits"]) == 2


@pytest.mark.asyncio
async def test_exact_payment_is_left_alone(db, people, make_reservation):
    first = await make_reservation(people.john, PLAY_DATE, 17, players=PAIR)
    second = await make_reservation(people.john, PLAY_DATE, 18, players=PAIR)
    source = await _pay(db, people.john, first, 100)

    summary = await reconcile_multi_hour_payments(db, people.john.id)

    assert summary.examined == 1
    assert summary.fixed == 0
    assert source.amount == 100
    assert second.payment_status == ReservationPaymentStatus.PENDING


@pytest.mark.asyncio
async def test_different_players_are_not_siblings(db, people, make_reservation):
    first = await make_reservation(people.john, PLAY_DATE, 17, players=PAIR)
    await make_reservation(people.john, PLAY_DATE, 18, players=["John Dela Cruz", "Visiting Guest"])
    source = await _pay(db, people.john, first, 200)

    summary = await reconcile_multi_hour_payments(db, people.john.id)

    assert summary.fixed == 0
    assert source.amount == 200


@pytest.mark.asyncio
async def test_reservation_with_open_payment_is_skipped(db, people, make_reservation):
    first = await make_reservation(people.john, PLAY_DATE, 17, players=PAIR)
    second = await make_reservation(people.john, PLAY_DATE, 18, players=PAIR)
    source = await _pay(db, people.john, first, 200)
    await create_payment(
        db,
        people.john,
        payment_method=PaymentMethod.CASH,
        reservation_id=str(second.id),
        amount=100,
        status=PaymentStatus.PENDING,
    )
    await db.commit()

    summary = await reconcile_multi_hour_payments(db, people.john.id)

    assert summary.fixed == 0
    assert source.amount == 200


@pytest.mark.asyncio
async def test_old_reservations_are_outside_the_window(db, people, make_reservation):
    first = await make_reservation(people.john, PLAY_DATE, 17, players=PAIR)
    second = await make_reservation(people.john, PLAY_DATE, 18, players=PAIR)
    second.created_at = utcnow() - timedelta(days=3)
    await db.commit()
    await _pay(db, people.john, first, 200)

    summary = await reconcile_multi_hour_payments(db, people.john.id)

    assert summary.examined == 0


@pytest.mark.asyncio
async def test_failure_stops_the_run(db, people, make_reservation):
    await make_reservation(people.john, PLAY_DATE, 17, players=PAIR)
    await make_reservation(people.john, PLAY_DATE, 18, players=PAIR)

    with patch("tennisclub.services.reconciliation._split_for", new_callable=AsyncMock) as mock_split:
        mock_split.side_effect = RuntimeError("database went away")
        summary = await reconcile_multi_hour_payments(db, people.john.id)

    assert summary.examined == 1
    assert summary.fixed == 0
    assert len(summary.errors) == 1
    assert "database went away" in summary.errors[0]


@pytest.mark.asyncio
async def test_background_entry_point_uses_its_own_session(db, people, make_reservation):
    first = await make_reservation(people.john, PLAY_DATE, 17, players=PAIR)
    second = await make_reservation(people.john, PLAY_DATE, 18, players=PAIR)
    await _pay(db, people.john, first, 200)

    summary = await run_multi_hour_reconciliation(people.john.id)

    assert summary.fixed == 1
    await db.refresh(second)
    assert second.payment_status == ReservationPaymentStatus.PAID


@pytest.mark.asyncio
async def test_background_entry_point_swallows_errors(db, people):
    with patch(
        "tennisclub.services.reconciliation.reconcile_multi_hour_payments",
        new_callable=AsyncMock,
        side_effect=RuntimeError("boom"),
    ):
        assert await run_multi_hour_reconciliation(people.john.id) is None
