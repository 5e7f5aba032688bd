# catalog_sync/database.py

from contextlib import asynccontextmanager
import os

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base

from catalog_sync.core.config import get_settings

settings = get_settings()


def resolve_database_url(raw_url: str) -> str:
    """Normalise a DATABASE_URL for the async drivers."""
    if not raw_url:
        raise ValueError("DATABASE_URL is not set in environment variables")
    # Convert postgresql:// to postgresql+asyncpg:// for async support
    if raw_url.startswith('postgresql://'):
        return raw_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    if raw_url.startswith('postgres://'):
        return raw_url.replace('postgres://', 'postgresql+asyncpg://', 1)
    if raw_url.startswith('sqlite://'):
        return raw_url.replace('sqlite://', 'sqlite+aiosqlite://', 1)
    return raw_url


def build_engine(database_url: str, **overrides):
    engine_kwargs = {"echo": False, "future": True}
    if not database_url.startswith("sqlite"):
        engine_kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
        )
    engine_kwargs.update(overrides)
    return create_async_engine(database_url, **engine_kwargs)


# Use environment variable directly if settings is empty
database_url = resolve_database_url(settings.DATABASE_URL or os.environ.get('DATABASE_URL', ''))

engine = build_engine(database_url)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

Base = declarative_base()


@asynccontextmanager
async def get_session():
    session = async_session()
    try:
        yield session
    finally:
        await session.close()
