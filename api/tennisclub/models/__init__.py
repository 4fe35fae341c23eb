"""All models imported here for Alembic autogenerate discovery."""

from tennisclub.models.base import Base
from tennisclub.models.coin import CoinTransaction, CoinTransactionType
from tennisclub.models.member import User, UserRole
from tennisclub.models.payment import Payment, PaymentMethod, PaymentStatus
from tennisclub.models.reservation import (
    Reservation,
    ReservationPaymentStatus,
    ReservationStatus,
    ReservationType,
)
from tennisclub.models.usage_report import CourtUsageReport

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Reservation",
    "ReservationStatus",
    "ReservationPaymentStatus",
    "ReservationType",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "CourtUsageReport",
    "CoinTransaction",
    "CoinTransactionType",
]
