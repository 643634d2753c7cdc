from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from finance_tracker.config import DATABASE_URL, SQL_ECHO


def to_async_url(url: str) -> str:
    """Convert a plain PostgreSQL URL to its asyncpg form."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def make_engine(url: str, echo: bool = False, **options: Any) -> AsyncEngine:
    """
    Create the async engine for a database URL.

    Args:
        url: Database URL; ``postgresql://`` is switched to the asyncpg driver
        echo: Log every SQL statement
        **options: Extra ``create_async_engine`` options (e.g. ``poolclass``)

    Returns:
        AsyncEngine
    """
    url = to_async_url(url)
    if url.startswith("postgresql+asyncpg://"):
        # Reminder jobs can sit idle for hours between fires
        options.setdefault("pool_pre_ping", True)
    return create_async_engine(url, echo=echo, **options)


def make_session_factory(bind: AsyncEngine) -> sessionmaker:
    """Session factory handed to the stores and the request dependency."""
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False, autoflush=False)


engine = make_engine(DATABASE_URL, echo=SQL_ECHO)
async_session = make_session_factory(engine)

# Create base class for models
Base = declarative_base()

async def init_db(bind: Optional[AsyncEngine] = None):
    """Create every table on *bind* (the application engine by default)."""
    # Register every model on the metadata before creating tables
    from finance_tracker.models import (  # noqa: F401
        category, notification, reminder, reminder_template, transaction, user
    )

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def get_db():
    """Get database session."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
