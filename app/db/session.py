from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from typing import AsyncGenerator
import logging

from app.config import settings


logger = logging.getLogger(__name__)


def normalize_database_url(url: str) -> str:
    """Route postgres:// and postgresql:// URLs through the asyncpg driver."""
    if url.startswith("postgres://"):
        return "postgresql+asyncpg://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


def make_engine(url: str, **options) -> AsyncEngine:
    """
    Async engine for the pair store.
    PostgreSQL gets a small pre-pinged pool; SQLite (tests, local tooling)
    keeps the dialect's default pool unless ``options`` override it.
    """
    url = normalize_database_url(url)
    if not url.startswith("sqlite"):
        options.setdefault("pool_pre_ping", True)
        options.setdefault("pool_size", 5)
        options.setdefault("max_overflow", 10)
    return create_async_engine(url, echo=settings.DATABASE_ECHO, **options)


def make_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    # Objects stay readable after commit; services return them to the routes
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = make_engine(settings.DATABASE_URL)
async_session_maker = make_session_maker(engine)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


async def init_db():
    """Create missing tables."""
    async with engine.begin() as conn:
        # Use Alembic migrations in production
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized")


async def close_db():
    """Dispose of the connection pool."""
    await engine.dispose()
    logger.info("Database connection closed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session. Commits when the request succeeds."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
