"""
Risk Profile Database - Async Engine.

============================================================
ASYNC DATABASE PERSISTENCE
============================================================

Shared declarative Base plus the async engine and session
factory used by the risk profile store.

Requirements:
- SQLAlchemy 2.0 ORM with an async driver
- Profile writes raise DatabasePersistenceError on failure

URL resolution:
- RISK_DATABASE_URL
- DATABASE_URL
- default: local SQLite through aiosqlite

============================================================
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base


# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./shelter_risk.db"

# =============================================================
# DECLARATIVE BASE
# =============================================================

Base = declarative_base()

# =============================================================
# DATABASE ENGINE
# =============================================================

_engine: Optional[AsyncEngine] = None
_SessionFactory: Optional[async_sessionmaker] = None


def get_database_url() -> str:
    """Get database URL from environment."""
    url = os.getenv("RISK_DATABASE_URL") or os.getenv("DATABASE_URL")
    if url and url.startswith("postgresql://"):
        # Promote sync URL to the async driver
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    if not url:
        url = DEFAULT_DATABASE_URL
        logger.warning(f"DATABASE_URL not set, using default: {url}")

    return url


def create_database_engine(
    url: Optional[str] = None,
    echo: bool = False,
) -> AsyncEngine:
    """
    Create (or return the already created) async engine.

    Args:
        url: Database URL; resolved from the environment if omitted
        echo: Log SQL statements

    Returns:
        SQLAlchemy AsyncEngine
    """
    global _engine

    if _engine is not None:
        return _engine

    database_url = url or get_database_url()
    logger.info(f"Creating database engine for: {database_url.split('@')[-1]}")

    _engine = create_async_engine(database_url, echo=echo, future=True)
    return _engine


def get_session_factory(engine: Optional[AsyncEngine] = None) -> async_sessionmaker:
    """
    Get session factory, creating if necessary.

    Passing an engine builds a dedicated factory for it and
    leaves the module-level one untouched.
    """
    global _SessionFactory

    if engine is not None:
        return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)

    if _SessionFactory is None:
        _SessionFactory = async_sessionmaker(
            bind=create_database_engine(),
            expire_on_commit=False,
            autoflush=False,
        )

    return _SessionFactory


# =============================================================
# DATABASE INITIALIZATION
# =============================================================


async def verify_database_connection(engine: Optional[AsyncEngine] = None) -> bool:
    """
    Verify database connection is working.

    Raises:
        DatabaseConnectionError if connection fails
    """
    engine = engine or create_database_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified successfully")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        raise DatabaseConnectionError(f"Cannot connect to database: {e}") from e


async def init_database(engine: Optional[AsyncEngine] = None) -> None:
    """
    Create all tables defined in ORM models.

    Raises:
        DatabaseInitializationError if table creation fails
    """
    engine = engine or create_database_engine()

    # Register models with Base
    from shelter_risk import models  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise DatabaseInitializationError(f"Table creation failed: {e}") from e


async def dispose_engine() -> None:
    """Dispose the module-level engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _SessionFactory = None


# =============================================================
# CUSTOM EXCEPTIONS
# =============================================================


class DatabasePersistenceError(Exception):
    """Raised when database persistence fails."""
    pass


class DatabaseConnectionError(DatabasePersistenceError):
    """Raised when database connection fails."""
    pass


class DatabaseInitializationError(DatabasePersistenceError):
    """Raised when database initialization fails."""
    pass


__all__ = [
    "Base",
    "DEFAULT_DATABASE_URL",
    "get_database_url",
    "create_database_engine",
    "get_session_factory",
    "verify_database_connection",
    "init_database",
    "dispose_engine",
    "DatabasePersistenceError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
]
