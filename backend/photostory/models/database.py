import asyncio
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from photostory.config import get_settings
from photostory.models.base import Base

logger = logging.getLogger(__name__)


def engine_options(database_url: str) -> dict[str, Any]:
    """Pool arguments for an async engine.

    In-memory SQLite (tests) shares one connection across the event loop so
    every session sees the same database; file-backed SQLite pools normally.
    """
    if database_url.startswith("sqlite"):
        if ":memory:" in database_url:
            return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 5,  # Strict 5 per instance (no overflow)
        "max_overflow": 0,
        "pool_pre_ping": True,  # Check connection health before use
        "pool_recycle": 300,
        "pool_timeout": 30,
    }


def create_engine_for(database_url: str | None = None) -> AsyncEngine:
    settings = get_settings()
    url = database_url or settings.database_url
    return create_async_engine(url, echo=settings.database_echo, future=True, **engine_options(url))


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = create_engine_for()


async def init_db(target: AsyncEngine | None = None, *, max_retries: int = 5, retry_delay: float = 2) -> None:
    """Create tables, retrying connection failures with exponential backoff."""
    target = target or engine
    for attempt in range(max_retries):
        try:
            async with target.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            return  # Success
        except OSError as e:
            if attempt < max_retries - 1:
                logger.warning(
                    f"DB connection attempt {attempt + 1}/{max_retries} failed: {e}. "
                    f"Retrying in {retry_delay} seconds..."
                )
                await asyncio.sleep(retry_delay)
                retry_delay *= 2  # Exponential backoff
            else:
                logger.error(f"Failed to connect to database after {max_retries} attempts")
                raise

