"""Async database engine and session management.

Request handlers get a session from get_db(). Background jobs (reconciliation,
orphan cleanup) open their own sessions from async_session_factory so their
commits are independent of any request.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from tennisclub.core.config import settings


def _engine_options(url: str) -> dict:
    # SQLite (tests, local scripts) cannot share pooled connections across event loops
    if url.startswith("sqlite"):
        return {"poolclass": NullPool}
    return {"pool_size": 20, "max_overflow": 10, "pool_pre_ping": True}


engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    **_engine_options(settings.database_url),
)

async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session. Used as a FastAPI dependency."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
