"""
Database configuration and session management for the Stock Ledger service.

This module sets up the database connection using SQLAlchemy and provides
a session factory for database operations.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL, DB_BUSY_TIMEOUT

Base = declarative_base()


def make_engine(url: str = DATABASE_URL) -> Engine:
    """
    Create a SQLAlchemy engine for the given database URL.

    SQLite connections get foreign keys switched on and a busy timeout so
    concurrent writers wait for each other instead of failing immediately.

    Args:
        url: SQLAlchemy database URL

    Returns:
        Engine: configured engine
    """
    if url.startswith("sqlite"):
        db_engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": DB_BUSY_TIMEOUT},
        )

        @event.listens_for(db_engine, "connect")
        def _on_connect(dbapi_conn, _):
            cur = dbapi_conn.cursor()
            try:
                cur.execute("PRAGMA foreign_keys=ON;")
            finally:
                cur.close()

        return db_engine
    return create_engine(url, pool_pre_ping=True)


engine       = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency function that provides a database session.

    Yields:
        Session: SQLAlchemy database session

    Usage:
        Use as a FastAPI dependency to inject database sessions into route handlers.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
