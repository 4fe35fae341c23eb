"""Reservation model.

A reservation holds the court for a contiguous block of whole hours on one
date. Payments point at it by id; payment_status is only ever changed by
the payment workflow.
"""

import datetime as dt
import enum

from sqlalchemy import Date, Enum, Float, ForeignKey, Index, Integer, text
from sqlalchemy.orm import Mapped, mapped_column

from tennisclub.models.base import Base, JSONType, TimestampMixin


class ReservationStatus(enum.StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class ReservationPaymentStatus(enum.StrEnum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class ReservationType(enum.StrEnum):
    REGULAR = "regular"
    BLOCKED = "blocked"  # Admin maintenance/event block, never charged


ACTIVE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


class Reservation(TimestampMixin, Base):
    __tablename__ = "reservations"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    # When (whole hours)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    time_slot: Mapped[int] = mapped_column(Integer, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    end_time_slot: Mapped[int] = mapped_column(Integer, nullable=False)

    # Who (display names, members and guests alike)
    players: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    status: Mapped[ReservationStatus] = mapped_column(
        Enum(ReservationStatus, name="reservation_status", values_callable=lambda e: [x.value for x in e]),
        default=ReservationStatus.PENDING,
        nullable=False,
    )
    payment_status: Mapped[ReservationPaymentStatus] = mapped_column(
        Enum(
            ReservationPaymentStatus,
            name="reservation_payment_status",
            values_callable=lambda e: [x.value for x in e],
        ),
        default=ReservationPaymentStatus.PENDING,
        nullable=False,
    )
    reservation_type: Mapped[ReservationType] = mapped_column(
        Enum(ReservationType, name="reservation_type", values_callable=lambda e: [x.value for x in e]),
        default=ReservationType.REGULAR,
        nullable=False,
    )
    total_fee: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    __table_args__ = (
        # Prevent double-booking of the same start hour. Overlapping multi-hour
        # ranges are rejected in booking_rules before insert.
        Index(
            "ix_reservations_no_double",
            "date",
            "time_slot",
            unique=True,
            postgresql_where=text("status IN ('pending', 'confirmed')"),
            sqlite_where=text("status IN ('pending', 'confirmed')"),
        ),
        Index("ix_reservations_user_date", "user_id", "date"),
    )

    def __repr__(self) -> str:
        return f"<Reservation {self.date} {self.time_slot}:00-{self.end_time_slot}:00 user={self.user_id}>"
