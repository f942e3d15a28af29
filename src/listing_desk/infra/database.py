"""Engine and sessions for the local chat store.

SQLite through aiosqlite by default; any async SQLAlchemy URL can be set
with ``DATABASE_URL``. Sessions flush inside services and the caller that
opened the session commits.
"""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from listing_desk.app.config import get_settings

# Applied once at startup; WAL lets the inbox read while a send is writing
SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA busy_timeout=30000",
)


class Base(DeclarativeBase):
    """Declarative base for the chat store tables."""
    pass


def _engine_options(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # Seconds to wait on the single-writer lock
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    return {"pool_size": 5, "max_overflow": 10, "pool_pre_ping": True}


settings = get_settings()
_is_sqlite = settings.database_url.startswith("sqlite")

engine = create_async_engine(settings.database_url, echo=False, **_engine_options(settings.database_url))

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    """Create the chat store tables if they are missing."""
    import listing_desk.domain.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # journal_mode cannot change inside the table-creation transaction
    if _is_sqlite:
        async with engine.begin() as conn:
            for pragma in SQLITE_PRAGMAS:
                await conn.execute(text(pragma))


async def close_db():
    """Release pooled connections."""
    await engine.dispose()
