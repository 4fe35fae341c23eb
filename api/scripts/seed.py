"""Seed the database with tennis club test data.

Run with: python -m scripts.seed
Creates the club officers, a handful of approved members, and a starter
financial report document.
"""

import asyncio
import json
from pathlib import Path

from sqlalchemy import select

from tennisclub.core.auth import hash_password
from tennisclub.core.config import settings
from tennisclub.core.database import async_session_factory, engine
from tennisclub.models import Base, User, UserRole
from tennisclub.services.coins import grant_coins

STARTER_COINS = 500.0

# (first name, last name, email, role)
USERS = [
    ("Club", "Superadmin", "superadmin@tennisclub.ph", UserRole.SUPERADMIN),
    ("Club", "Treasurer", "admin@tennisclub.ph", UserRole.ADMIN),
    ("John", "Dela Cruz", "john@example.com", UserRole.MEMBER),
    ("Maria", "Santos", "maria@example.com", UserRole.MEMBER),
    ("Andres", "Reyes", "andres@example.com", UserRole.MEMBER),
    ("Liza", "Mendoza", "liza@example.com", UserRole.MEMBER),
]

FINANCIAL_REPORT = {
    "beginningBalance": {"description": "Beginning balance", "amount": 0},
    "receiptsCollections": [
        {"description": "Membership Fees", "amount": 0},
        {"description": "Tennis Court Usage Receipts", "amount": 0},
        {"description": "Advances", "amount": 0},
    ],
    "disbursementsExpenses": [
        {"description": "Court Maintenance", "amount": 0},
        {"description": "App Service Fee", "amount": 0},
    ],
    "totalReceipts": 0,
    "totalDisbursements": 0,
    "netIncome": 0,
    "fundBalance": 0,
}


def write_financial_report() -> bool:
    path = Path(settings.financial_report_path)
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(FINANCIAL_REPORT, indent=2), encoding="utf-8")
    return True


async def seed():
    # Create tables (in dev; production uses Alembic migrations)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as db:
        # Check if already seeded
        result = await db.execute(select(User).where(User.email == USERS[0][2]))
        if result.scalar_one_or_none():
            print("Database already seeded - skipping.")
            return

        for first_name, last_name, email, role in USERS:
            user = User(
                email=email,
                hashed_password=hash_password("tennis123"),
                first_name=first_name,
                last_name=last_name,
                role=role,
                is_approved=True,
            )
            db.add(user)
            await db.flush()
            if role == UserRole.MEMBER:
                await grant_coins(db, user.id, STARTER_COINS, "Starter coins")
        await db.commit()

    created_report = write_financial_report()

    print(f"Seeded {len(USERS)} users (password: tennis123)")
    for _, _, email, role in USERS:
        print(f"    {email} ({role.value})")
    if created_report:
        print(f"  Financial report template written to {settings.financial_report_path}")


if __name__ == "__main__":
    asyncio.run(seed())
