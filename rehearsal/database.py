"""Async SQLAlchemy engine and session helpers."""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from rehearsal.config import settings


def make_engine(url: str) -> AsyncEngine:
    """Create an engine; SQLite connections get foreign keys switched on."""
    new_engine = create_async_engine(url, echo=False)
    if new_engine.dialect.name == "sqlite":

        @event.listens_for(new_engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):  # noqa: ANN001
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = make_engine(settings.database_url)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """FastAPI dependency that yields an async DB session."""
    async with async_session() as session:
        yield session


async def init_db(target: AsyncEngine | None = None) -> None:
    """Create all tables (idempotent)."""
    async with (target or engine).begin() as conn:
        from rehearsal.models import (  # noqa: F401 – import so Base knows about them
            PracticeSession,
            Speech,
            SpeechPhrase,
            SpeechSegment,
            WordMastery,
        )
        await conn.run_sync(Base.metadata.create_all)
