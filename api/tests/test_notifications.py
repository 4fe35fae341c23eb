"""Notification fan-out and coin ledger tests."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from tennisclub.core.errors import InvalidRequestError
from tennisclub.models import CoinTransaction, CoinTransactionType
from tennisclub.services import notifications
from tennisclub.services.coins import debit_coins, grant_coins


@pytest.fixture
def sink():
    recorder = AsyncMock()
    notifications.register_sink(recorder)
    yield recorder
    notifications.unregister_sink(recorder)


@pytest.mark.asyncio
async def test_notify_reaches_registered_sinks(sink):
    await notifications.notify(notifications.PAYMENT_RECORDED, {"payment_id": 1})
    sink.assert_awaited_once_with(notifications.PAYMENT_RECORDED, {"payment_id": 1})


@pytest.mark.asyncio
async def test_failing_sink_does_not_propagate(sink):
    broken = AsyncMock(side_effect=ConnectionError("smtp down"))
    notifications.register_sink(broken)
    try:
        await notifications.notify(notifications.PAYMENT_CANCELLED, {"payment_id": 2})
    finally:
        notifications.unregister_sink(broken)

    broken.assert_awaited_once()
    sink.assert_awaited_once()


@pytest.mark.asyncio
async def test_unregistered_sink_is_silent():
    recorder = AsyncMock()
    notifications.register_sink(recorder)
    notifications.unregister_sink(recorder)
    await notifications.notify(notifications.PAYMENT_APPROVED, {})
    recorder.assert_not_awaited()


# ---------------------------------------------------------------------------
# Coin ledger
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_grant_then_debit(db, people):
    await grant_coins(db, people.maria.id, 150, "Tournament prize")
    txn_id = await debit_coins(db, people.maria.id, 100, description="Court payment")
    await db.commit()

    assert people.maria.coin_balance == 50
    assert txn_id.startswith("COIN-")
    result = await db.execute(
        select(CoinTransaction).where(CoinTransaction.user_id == people.maria.id).order_by(CoinTransaction.id)
    )
    txns = result.scalars().all()
    assert [(t.transaction_type, t.amount, t.balance_after) for t in txns] == [
        (CoinTransactionType.GRANT, 150, 150),
        (CoinTransactionType.COURT_PAYMENT, -100, 50),
    ]


@pytest.mark.asyncio
async def test_debit_must_be_positive(db, people):
    with pytest.raises(InvalidRequestError):
        await debit_coins(db, people.john.id, 0)
