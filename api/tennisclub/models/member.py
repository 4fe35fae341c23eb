"""Club member model.

User = a person with login credentials. Active, approved users with the
member or admin role make up the roster used for member pricing.
"""

import enum

from sqlalchemy import Boolean, Enum, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from tennisclub.models.base import Base, TimestampMixin


class UserRole(enum.StrEnum):
    """Club roles."""

    MEMBER = "member"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class User(TimestampMixin, Base):
    """A person who can log in and pay for court time."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(254), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str | None] = mapped_column(String(200))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=lambda e: [x.value for x in e]),
        default=UserRole.MEMBER,
        nullable=False,
    )

    # Profile
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50))

    # Cached coin balance; the audit trail is coin_transactions
    coin_balance: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<User {self.email}>"
