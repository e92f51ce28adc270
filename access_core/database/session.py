"""
Database engine and session factory for the subscription read model.

Usage:
    from access_core.database.session import get_session_factory

    reader = SqlSubscriptionReader(get_session_factory())
"""

import os
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

# Module-level engine singleton
_engine = None
_SessionLocal = None


def _get_database_url() -> str:
    """
    Get and normalize the database URL from environment.

    Converts postgres:// URLs to postgresql:// (SQLAlchemy requires the latter).
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is not set")

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    return database_url


def get_engine():
    """
    Get or create the database engine singleton.

    pool_pre_ping verifies connections before use; connections are
    recycled after 30 minutes.
    """
    global _engine
    if _engine is None:
        try:
            database_url = _get_database_url()
            _engine = create_engine(
                database_url,
                pool_pre_ping=True,
                pool_recycle=1800,
            )
            logger.info("Database engine created")
        except ValueError as e:
            logger.error("Failed to create database engine", extra={"error": str(e)})
            raise
    return _engine


def get_session_factory() -> sessionmaker:
    """Get or create the session factory singleton."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine()
        )
    return _SessionLocal


def reset_engine() -> None:
    """Dispose the engine and forget the session factory (for tests)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
