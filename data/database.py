from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config.settings import settings
from data.schema import Base

engine = create_async_engine(settings.DATABASE_URL, echo=False)
async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def init_db(bind: AsyncEngine = engine) -> None:
    """Create all tables (idempotent)."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if bind.dialect.name == "sqlite":
            # WAL lets concurrent source runs read while another one writes
            await conn.execute(text("PRAGMA journal_mode=WAL"))


@asynccontextmanager
async def get_session(
    factory: async_sessionmaker[AsyncSession] = async_session_factory,
) -> AsyncGenerator[AsyncSession]:
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
