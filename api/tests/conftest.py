"""Shared test fixtures.

Tests run against a throwaway SQLite file. The environment must be set before
anything imports tennisclub.core.config, which builds settings at import time.
"""

import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="tennisclub-tests-")
os.environ.setdefault("TC_DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}")
os.environ.setdefault("TC_FINANCIAL_REPORT_PATH", os.path.join(_TMP_DIR, "financial-report.json"))
os.environ.setdefault("TC_LOG_LEVEL", "WARNING")

from datetime import date  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from tennisclub.core.auth import create_access_token  # noqa: E402
from tennisclub.core.database import async_session_factory, engine  # noqa: E402
from tennisclub.main import app  # noqa: E402
from tennisclub.models import (  # noqa: E402
    Base,
    Reservation,
    ReservationPaymentStatus,
    ReservationStatus,
    ReservationType,
    User,
    UserRole,
)


@pytest.fixture
async def db():
    """Fresh schema per test and a session for arranging and asserting."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with async_session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
async def client(db):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def _user(first: str, last: str, role: UserRole = UserRole.MEMBER, approved: bool = True, coins: float = 0.0) -> User:
    slug = f"{first}.{last}".lower().replace(" ", "").replace("..", ".")
    return User(
        email=f"{slug}@example.com",
        first_name=first,
        last_name=last,
        role=role,
        is_approved=approved,
        coin_balance=coins,
    )


@pytest.fixture
async def people(db):
    """Club officers, approved members and one unapproved registration."""
    users = SimpleNamespace(
        superadmin=_user("Club", "Superadmin", UserRole.SUPERADMIN),
        admin=_user("Club", "Treasurer", UserRole.ADMIN),
        john=_user("John", "Dela Cruz", coins=500.0),
        maria=_user("Maria", "Santos"),
        reyes=_user("A.", "Reyes"),
        pending=_user("Pedro", "Penduko", approved=False),
    )
    db.add_all(vars(users).values())
    await db.commit()
    return users


@pytest.fixture
def headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}

    return _headers


@pytest.fixture
def make_reservation(db):
    async def _make(
        user: User,
        on: date,
        time_slot: int,
        duration: int = 1,
        players: list[str] | None = None,
        total_fee: float = 100.0,
        status: ReservationStatus = ReservationStatus.CONFIRMED,
        payment_status: ReservationPaymentStatus = ReservationPaymentStatus.PENDING,
        reservation_type: ReservationType = ReservationType.REGULAR,
    ) -> Reservation:
        reservation = Reservation(
            user_id=user.id,
            date=on,
            time_slot=time_slot,
            duration=duration,
            end_time_slot=time_slot + duration,
            players=players if players is not None else [user.full_name],
            total_fee=total_fee,
            status=status,
            payment_status=payment_status,
            reservation_type=reservation_type,
        )
        db.add(reservation)
        await db.commit()
        return reservation

    return _make
