"""Coin transaction model for the club's prepaid coin wallet."""

import enum

from sqlalchemy import Enum, Float, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from tennisclub.models.base import Base, TimestampMixin


class CoinTransactionType(enum.StrEnum):
    GRANT = "grant"
    COURT_PAYMENT = "court_payment"
    ADJUSTMENT = "adjustment"


class CoinTransaction(TimestampMixin, Base):
    """A single coin movement: positive means coins in, negative means debit."""

    __tablename__ = "coin_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    balance_after: Mapped[float] = mapped_column(Float, nullable=False)
    transaction_type: Mapped[CoinTransactionType] = mapped_column(
        Enum(CoinTransactionType, name="coin_transaction_type", values_callable=lambda e: [x.value for x in e]),
        nullable=False,
    )
    payment_id: Mapped[int | None] = mapped_column(ForeignKey("payments.id"))
    description: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("ix_coin_txn_user", "user_id"),)

    def __repr__(self) -> str:
        return f"<CoinTransaction {self.transaction_type.value} {self.amount} user={self.user_id}>"
