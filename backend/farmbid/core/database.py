from datetime import datetime, timezone
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from farmbid.core.config import settings

# When using PgBouncer: keep more connections since PgBouncer manages the real pool
# When not using PgBouncer: conservative settings to protect PostgreSQL
if settings.USE_PGBOUNCER:
    pool_config = {
        "pool_size": 20,
        "max_overflow": 40,
        "pool_recycle": 300,
        "pool_timeout": 30,
        "pool_pre_ping": False,  # PgBouncer handles connection health
    }
else:
    pool_config = {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 120,
        "pool_timeout": 10,
        "pool_pre_ping": True,
    }

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    future=True,
    pool_use_lifo=True,
    connect_args={
        "server_settings": {
            "timezone": "UTC",
            "application_name": "farmbid",
        },
        "command_timeout": 30,
        "statement_cache_size": 0,
        "timeout": 15,
    },
    **pool_config,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """All ORM models base class"""

    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes read back from the database as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI Dependency: Provide database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database, create all tables"""
    async with engine.begin() as conn:
        # Import all models to ensure they are registered
        from farmbid.models import (  # noqa: F401
            Auction,
            Bid,
            Notification,
            Order,
            Product,
            User,
        )

        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connection"""
    await engine.dispose()
