"""
Task database.

A single SQLite file under data/, reached through SQLAlchemy's async
engine with the aiosqlite driver. The orchestrator opens a short-lived
session from AsyncSessionLocal for every write, so no transaction stays
open while an agent runs; request handlers get theirs from get_db.
"""
import logging
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from ..config import DATA_DIR
from ..core.constants import DATABASE_FILE_NAME

logger = logging.getLogger(__name__)

DATABASE_PATH: Path = DATA_DIR / DATABASE_FILE_NAME


def sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory whose objects stay readable after commit."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


# aiosqlite hands connections to its own worker thread.
engine: AsyncEngine = create_async_engine(
    sqlite_url(DATABASE_PATH),
    connect_args={"check_same_thread": False},
)
AsyncSessionLocal = make_session_factory(engine)


class Base(DeclarativeBase):
    """Declarative base for the project, landmark, task and comment tables."""


async def init_db(bind: AsyncEngine = engine) -> None:
    """
    Create missing tables.

    For file databases the parent directory is created first; in-memory
    databases are used as they are.
    """
    database = bind.url.database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info(f"Database ready: {database or 'in-memory'}")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session (FastAPI dependency)."""
    async with AsyncSessionLocal() as session:
        yield session
