# database.py - Async database setup
import os
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from contextlib import asynccontextmanager

logger = logging.getLogger("taskboard.db")

# Database configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./taskboard.db")

# Ensure asyncpg is used
if DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

_engine_kwargs = {
    "echo": os.getenv("SQL_ECHO", "false").lower() == "true",
    "future": True,
}
if not DATABASE_URL.startswith("sqlite"):
    # Connection pooling for server databases
    _engine_kwargs.update(
        pool_size=int(os.getenv("DB_POOL_SIZE", "20")),
        max_overflow=0,
        pool_pre_ping=True,
        pool_recycle=3600,
    )

engine = create_async_engine(DATABASE_URL, **_engine_kwargs)

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)


async def get_db_session():
    """Dependency for getting database session (FastAPI Depends).

    The connection goes back to the pool on every path. A store error raised
    inside the handler rolls back whatever the request had pending.
    """
    async with async_session_maker() as session:
        try:
            yield session
        except SQLAlchemyError:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db():
    """Initialize database and create tables"""
    from models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables ready")


async def close_db():
    """Close database connection pool"""
    await engine.dispose()


@asynccontextmanager
async def get_db_context():
    """Context manager for database operations outside of FastAPI request cycle"""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
