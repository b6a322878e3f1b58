import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session
from portal.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Create engine with connection pool
# pool_size=5: maintain 5 connections ready
# max_overflow=10: allow 10 extra connections under load
engine = create_engine(
    settings.postgres_url,
    pool_size=5,
    max_overflow=10,
    pool_pre_ping=True,
    echo=settings.debug  # Log SQL queries in debug mode
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_session_factory() -> sessionmaker:
    """
    Dependency returning the session factory services are built on.
    Tests override this to point the whole app at another engine.
    """
    return SessionLocal


@contextmanager
def get_db_session(session_factory: Optional[sessionmaker] = None):
    """
    Context manager for database sessions.
    Commits on success, rolls back on any exception and re-raises.
    Usage:
        with get_db_session() as db:
            db.execute(text("SELECT * FROM users"))
    """
    session: Session = (session_factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dialect_name(db: Session) -> str:
    """Name of the dialect the session is bound to ('postgresql', 'sqlite', ...)."""
    return db.get_bind().dialect.name


def test_postgres_connection(session_factory: Optional[sessionmaker] = None) -> bool:
    """
    Test if the relational store is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        with get_db_session(session_factory) as db:
            result = db.execute(text("SELECT 1 as test"))
            row = result.fetchone()
            return row[0] == 1
    except Exception:
        logger.exception("PostgreSQL connection failed")
        return False

