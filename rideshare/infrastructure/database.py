"""
Async SQLAlchemy engines and session factories.

Uses ``asyncpg`` as the PostgreSQL driver for non-blocking I/O.  The
directory (user profile) lookups get their own session factory so a failing
lookup can never poison the transaction of a ride operation.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from rideshare.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=20,
    max_overflow=10,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

if settings.directory_database_url:
    directory_engine = create_async_engine(
        settings.directory_database_url,
        echo=False,
        pool_size=5,
        max_overflow=5,
    )
    directory_session_factory = async_sessionmaker(
        directory_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
else:
    directory_session_factory = async_session_factory


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""
