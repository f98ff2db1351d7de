"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Engine, session factory and session helpers.

- Connection pooling (QueuePool on PostgreSQL)
- Short-lived sessions per gate call / batch / poll cycle
- Rollback on any failure inside a session scope

============================================================
DESIGN PRINCIPLES
============================================================
- No module-level singletons: the runtime builds one engine
  and passes the session factory to every component
- Hard failures on persistence errors
- SQLite (in-memory) is supported for tests

============================================================
"""

import logging
from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from core.config import DatabaseConfig
from storage.models import Base


logger = logging.getLogger(__name__)


SessionFactory = Callable[[], Session]


# =============================================================
# EXCEPTIONS
# =============================================================

class DatabaseConnectionError(Exception):
    """Raised when the database cannot be reached."""
    pass


# =============================================================
# ENGINE / SESSION FACTORY
# =============================================================

def create_database_engine(config: DatabaseConfig) -> Engine:
    """
    Create SQLAlchemy engine with connection pooling.

    Args:
        config: Database configuration

    Returns:
        SQLAlchemy Engine
    """
    url = config.url
    logger.info(f"Creating database engine for: {url.split('@')[-1]}")

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=config.echo,
        )

        # pysqlite defers BEGIN on its own; take over so SAVEPOINT
        # (tag inserts) behaves as on PostgreSQL.
        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_conn, connection_record):
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return engine

    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout_seconds,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=config.echo,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to ``engine``."""
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


# =============================================================
# SESSION MANAGEMENT
# =============================================================

@contextmanager
def session_scope(session_factory: SessionFactory) -> Generator[Session, None, None]:
    """
    Session with automatic rollback and cleanup.

    The caller commits explicitly (repositories own their
    transaction boundaries).
    """
    session = session_factory()
    try:
        yield session
    except Exception as e:
        logger.error(f"Session error, rolling back: {e}")
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================
# DATABASE INITIALIZATION
# =============================================================

def verify_database_connection(engine: Engine) -> bool:
    """
    Verify database connection is working.

    Raises:
        DatabaseConnectionError: If connection fails
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
            logger.info("Database connection verified successfully")
            return True
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        raise DatabaseConnectionError(f"Cannot connect to database: {e}") from e


def create_all_tables(engine: Engine) -> None:
    """Create every table of the pipeline's models (idempotent)."""
    Base.metadata.create_all(bind=engine)
    logger.info(f"Ensured {len(Base.metadata.tables)} tables exist")
