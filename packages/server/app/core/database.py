"""
Database connection and session management.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.core.config import get_settings

settings = get_settings()


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine; SQLite gets a longer busy timeout for concurrent writers."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"timeout": 30}
    return create_async_engine(database_url, echo=echo, future=True, connect_args=connect_args)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url, echo=settings.debug)

async_session_factory = build_session_factory(engine)


async def init_db(bind: AsyncEngine | None = None):
    """Create all tables (development and tests only; production uses migrations)."""
    import app.models  # noqa: F401  (populate metadata)

    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
