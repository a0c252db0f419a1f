"""
Async SQLAlchemy engine and session factory for the local ping outbox.

Uses ``aiosqlite`` so the outbox lives on the device with no server to run.
Only location pings that failed delivery are stored here, and only for the
retry window.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.config import settings

engine = create_async_engine(settings.database_url, echo=False)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


async def init_models(bind: AsyncEngine = engine) -> None:
    """Create the outbox tables if they do not exist yet."""
    from . import models  # noqa: F401  (registers tables on Base.metadata)

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
