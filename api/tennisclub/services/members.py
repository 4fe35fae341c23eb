"""Member roster lookups shared by pricing and payment attribution."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tennisclub.models.member import User, UserRole

ROSTER_ROLES = (UserRole.MEMBER, UserRole.ADMIN)


async def get_roster(db: AsyncSession) -> list[User]:
    """Active, approved users who pay member rates."""
    result = await db.execute(
        select(User)
        .where(
            User.role.in_(ROSTER_ROLES),
            User.is_active.is_(True),
            User.is_approved.is_(True),
        )
        .order_by(User.id)
    )
    return list(result.scalars().all())


async def get_member_names(db: AsyncSession) -> list[str]:
    return [u.full_name for u in await get_roster(db)]
