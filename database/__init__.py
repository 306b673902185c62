"""
Database Package Initialization.

============================================================
ASYNC DATABASE PERSISTENCE LAYER
============================================================

Shared declarative Base, async engine and session factory.
ORM models register themselves against Base from their own
packages (shelter_risk.models).

============================================================
"""

from .engine import (
    # Declarative base
    Base,
    # Engine & Session
    DEFAULT_DATABASE_URL,
    get_database_url,
    create_database_engine,
    get_session_factory,
    # Initialization
    verify_database_connection,
    init_database,
    dispose_engine,
    # Exceptions
    DatabasePersistenceError,
    DatabaseConnectionError,
    DatabaseInitializationError,
)


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
