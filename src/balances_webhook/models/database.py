"""
Database configuration and session management.
"""
from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from contextlib import contextmanager
from typing import Generator
import logging

from config.settings import settings

logger = logging.getLogger(__name__)


def _connect_args(database_url: str) -> dict:
    # SQLite connections are handed across FastAPI's worker threads
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


# Create SQLAlchemy engine
engine = create_engine(
    settings.database_url,
    echo=False,  # Set to True for SQL query logging
    pool_pre_ping=True,
    pool_recycle=300,
    connect_args=_connect_args(settings.database_url),
)

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create Base class
Base = declarative_base()


@contextmanager
def get_db_context() -> Generator:
    """
    Context manager for database sessions.

    Commits on success and rolls back on any exception. Rollbacks are logged
    with the correlation id of the request. Application errors such as a
    missing source are expected outcomes and are logged at info level.
    """
    # Deferred: the core package imports the models
    from ..core.exceptions import WebhookError
    from ..core.logging import get_correlation_id

    db = SessionLocal()
    try:
        yield db
        db.commit()
    except WebhookError as e:
        db.rollback()
        logger.info(f"Rolled back session for request {get_correlation_id()}: {e.error_code.value}")
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Database error in request {get_correlation_id()}, session rolled back: {e}")
        raise
    finally:
        db.close()


def get_db():
    """
    FastAPI dependency function that returns a database session.
    """
    with get_db_context() as db:
        yield db


def init_db():
    """Initialize database tables."""
    # Import models so they are registered on Base.metadata
    from . import parse_error, source, transaction  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to create database tables: {e}")
        raise


def check_db_connection():
    """Check database connection."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database connection successful")
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
