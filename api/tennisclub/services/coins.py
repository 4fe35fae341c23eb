"""Coin service for the prepaid coin wallet.

Coin balance is cached on User.coin_balance for fast reads.
The authoritative audit trail is the coin_transactions table.
All mutations go through this service to keep the cache in sync.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tennisclub.core.errors import InvalidRequestError, NotFoundError
from tennisclub.models.coin import CoinTransaction, CoinTransactionType
from tennisclub.models.member import User


async def _apply(
    db: AsyncSession,
    user_id: int,
    amount: float,
    txn_type: CoinTransactionType,
    payment_id: int | None,
    description: str,
) -> CoinTransaction:
    """Core coin mutation: adjust balance and record a transaction.

    Uses SELECT ... FOR UPDATE on the user row to prevent race conditions.
    """
    result = await db.execute(select(User).where(User.id == user_id).with_for_update())
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User", user_id)

    new_balance = round(user.coin_balance + amount, 2)
    if new_balance < 0:
        raise InvalidRequestError(
            f"Insufficient coins: balance {user.coin_balance:.2f}, required {-amount:.2f}"
        )
    user.coin_balance = new_balance

    txn = CoinTransaction(
        user_id=user_id,
        amount=amount,
        balance_after=new_balance,
        transaction_type=txn_type,
        payment_id=payment_id,
        description=description,
    )
    db.add(txn)
    await db.flush()
    return txn


async def debit_coins(
    db: AsyncSession,
    user_id: int,
    amount: float,
    payment_id: int | None = None,
    description: str | None = None,
) -> str:
    """Debit coins for a court payment. Returns the coin transaction id.

    Raises InvalidRequestError if the balance does not cover the amount.
    """
    if amount <= 0:
        raise InvalidRequestError("Coin debit amount must be positive")

    txn = await _apply(
        db,
        user_id,
        amount=-amount,
        txn_type=CoinTransactionType.COURT_PAYMENT,
        payment_id=payment_id,
        description=description or f"Court payment #{payment_id}",
    )
    return f"COIN-{txn.id}"


async def grant_coins(db: AsyncSession, user_id: int, amount: float, description: str) -> CoinTransaction:
    """Grant coins to a user (admin action)."""
    return await _apply(
        db,
        user_id,
        amount=amount,
        txn_type=CoinTransactionType.GRANT,
        payment_id=None,
        description=description,
    )
