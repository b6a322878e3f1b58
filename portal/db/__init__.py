"""
Database module - PostgreSQL connection and schema.
"""
from portal.db.postgres import get_db_session, get_session_factory, test_postgres_connection

__all__ = [
    "get_db_session",
    "get_session_factory",
    "test_postgres_connection",
]
