"""
Database configuration and session management.

SQLite is used for development and tests, PostgreSQL in production. All
column types and queries used by the models are portable between the two:

1. func.now() - Works on both (SQLite: datetime('now'), PostgreSQL: NOW())
2. ForeignKey with ondelete - Works on both (SQLite requires PRAGMA foreign_keys=ON)
3. DateTime(timezone=True) - SQLite stores naive values; models normalise on read
"""

import logging

from config import get_settings
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

settings = get_settings()
logger = logging.getLogger(__name__)


def normalize_database_url(url: str) -> str:
    """Rewrite plain PostgreSQL URLs to the asyncpg driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


database_url = normalize_database_url(settings.DATABASE_URL)
is_sqlite = database_url.startswith("sqlite")

engine_kwargs: dict = {
    "echo": False,
}

if not is_sqlite:
    # pool_pre_ping: Verify connections are alive before using them.
    # Total max connections = pool_size + max_overflow = 15
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
    Dependency yielding a database session.

    Routes call db.commit() explicitly when they want to persist changes.
    The rollback on exception is kept as a safety net.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Create all tables."""
    # Import models so they register with Base.metadata
    from models import auth_session, generation_usage, text_session, user  # noqa: F401

    async with engine.begin() as conn:
        # For PostgreSQL: use advisory lock to prevent race conditions
        # when multiple workers start simultaneously
        if not is_sqlite:
            await conn.execute(text("SELECT pg_advisory_xact_lock(1)"))
            logger.info("Acquired database migration lock")

        await conn.run_sync(Base.metadata.create_all, checkfirst=True)

    logger.info("Database initialized successfully")


async def ping_db(session: AsyncSession) -> int:
    """Run a trivial query; raises if the database is unreachable."""
    result = await session.execute(text("SELECT 1 AS result"))
    return result.scalar_one()
