"""
Database configuration and session management.

SQLite is used for development and tests, PostgreSQL in production.
Everything used by the category tables works on both:

1. func.now() - SQLite: CURRENT_TIMESTAMP, PostgreSQL: NOW()
2. JSON columns - SQLAlchemy's JSON type maps to TEXT on SQLite, json on PostgreSQL
3. ForeignKey - SQLite requires PRAGMA foreign_keys=ON (set per connection below)

Limitations:
- SQLite has limited concurrent write support (single writer at a time), so
  concurrent category updates surface as OperationalError ("database is locked").
- A UNIQUE index treats NULLs as distinct on both backends, so root-level
  sibling names are only protected by the service-level check.
"""

import logging

from config import get_settings
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

settings = get_settings()

# Convert URL for async drivers
database_url = settings.DATABASE_URL
if database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

is_sqlite = database_url.startswith("sqlite")

engine_kwargs: dict = {
    "echo": False,
}

if not is_sqlite:
    # pool_pre_ping: drop stale connections after a DB restart.
    # pool_size + max_overflow must stay below PostgreSQL's max_connections.
    engine_kwargs["pool_pre_ping"] = True
    engine_kwargs["pool_size"] = 5
    engine_kwargs["max_overflow"] = 10

engine = create_async_engine(database_url, **engine_kwargs)

# SQLite does not enforce foreign keys by default - must be enabled per connection
if is_sqlite:
    from sqlalchemy import event as sa_event

    @sa_event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """
    Session dependency.

    Commits are issued by the category service; the rollback here is only a
    safety net for errors raised outside of it.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Create tables that do not exist yet."""
    # Import models so they register on Base.metadata
    from models import category  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)

    logging.info("Database initialized successfully")
