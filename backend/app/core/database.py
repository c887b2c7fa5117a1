"""
Tubepulse Database Layer — SQLAlchemy 2.0 async engine and sessions.
"""
from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from app.core.config import get_settings

settings = get_settings()


class Base(DeclarativeBase):
    pass


def make_engine(url: str | None = None, *, pooled: bool = True) -> AsyncEngine:
    """Build an async engine. Celery workers use ``pooled=False`` because each
    task runs on a fresh event loop and pooled asyncpg connections are bound
    to the loop that opened them."""
    kwargs = {"echo": settings.db_echo}
    if not pooled:
        kwargs["poolclass"] = NullPool
    return create_async_engine(url or settings.database_url, **kwargs)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, expire_on_commit=False)


engine = make_engine()
async_session_factory = make_session_factory(engine)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per request."""
    async with async_session_factory() as session:
        yield session


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create tables from the ORM metadata (no migrations in this service)."""
    import app.models.models  # noqa: F401  register mappers

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
