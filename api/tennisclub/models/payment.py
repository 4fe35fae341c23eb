"""Payment model.

A payment settles a reservation, an open-play poll, or a manually entered
court session (metadata["is_manual_payment"]). reservation_id is a soft
reference: reservations can be deleted without cascading, and the
maintenance jobs in services/orphans.py repair what is left behind.
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tennisclub.models.base import Base, JSONType, TimestampMixin, as_utc, utcnow


class PaymentMethod(enum.StrEnum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    GCASH = "gcash"
    COINS = "coins"


class PaymentStatus(enum.StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    RECORD = "record"  # Entered into the club's books


STATUS_DISPLAY = {
    PaymentStatus.PENDING: "Pending Payment",
    PaymentStatus.COMPLETED: "Paid",
    PaymentStatus.FAILED: "Payment Failed",
    PaymentStatus.REFUNDED: "Refunded",
    PaymentStatus.RECORD: "Record",
}


class Payment(TimestampMixin, Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    # What is being paid for (at most one is set; manual payments have neither)
    reservation_id: Mapped[str | None] = mapped_column(String(36))
    poll_id: Mapped[str | None] = mapped_column(String(36))

    amount: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="PHP", nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod, name="payment_method", values_callable=lambda e: [x.value for x in e]),
        nullable=False,
    )
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status", values_callable=lambda e: [x.value for x in e]),
        default=PaymentStatus.PENDING,
        nullable=False,
    )

    transaction_id: Mapped[str | None] = mapped_column(String(100))
    reference_number: Mapped[str | None] = mapped_column(String(100), index=True)
    payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    description: Mapped[str | None] = mapped_column(String(200))
    notes: Mapped[str | None] = mapped_column(Text)

    # Admin workflow
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    recorded_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    recorded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Fee breakdown, manual-payment details, cancellation record, override audit.
    # "metadata" is reserved on declarative classes, hence the attribute name.
    meta: Mapped[dict] = mapped_column("metadata", JSONType, default=dict, nullable=False)

    __table_args__ = (
        Index("ix_payments_user_status", "user_id", "status"),
        Index("ix_payments_reservation_status", "reservation_id", "status"),
        Index("ix_payments_due_status", "due_date", "status"),
    )

    @property
    def is_manual(self) -> bool:
        return bool((self.meta or {}).get("is_manual_payment"))

    @property
    def is_overdue(self) -> bool:
        if self.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED, PaymentStatus.RECORD):
            return False
        return utcnow() > as_utc(self.due_date)

    @property
    def status_display(self) -> str:
        return STATUS_DISPLAY[self.status]

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.status.value} {self.amount} user={self.user_id}>"
