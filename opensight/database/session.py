"""
Database Session Management

Handles connection pooling, session lifecycle, and database initialization.
Works with PostgreSQL in production and SQLite locally and in tests.

The Database object is constructed explicitly and passed to repositories;
there is no module-level engine.
"""

import os
import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from .models import Base

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_PATH = "opensight.db"


# =============================================================================
# DATABASE URL CONFIGURATION
# =============================================================================

def _normalize_url(url: str) -> str:
    # Hosted PostgreSQL URLs often use postgres:// but SQLAlchemy needs postgresql://
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def get_database_url(configured: Optional[str] = None) -> str:
    """
    Resolve the database URL.

    Priority:
    1. Explicit value (Settings.DATABASE_URL)
    2. DATABASE_URL environment variable
    3. POSTGRES_URL environment variable
    4. SQLite fallback for local development
    """
    for source, url in (
        ("settings", configured),
        ("DATABASE_URL", os.getenv("DATABASE_URL")),
        ("POSTGRES_URL", os.getenv("POSTGRES_URL")),
    ):
        if url:
            logger.info(f"Using database from {source}")
            return _normalize_url(url)

    sqlite_path = os.getenv("SQLITE_PATH", DEFAULT_SQLITE_PATH)
    logger.warning(f"No DATABASE_URL found, using SQLite: {sqlite_path}")
    return f"sqlite:///{sqlite_path}"


# =============================================================================
# ENGINE CONFIGURATION
# =============================================================================

def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Create database engine with appropriate settings.

    PostgreSQL: Connection pooling
    SQLite: Foreign key support; in-memory databases share one connection
    """
    if url.startswith("postgresql"):
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=1800,
            pool_pre_ping=True,
            echo=echo,
        )
        logger.info("Created PostgreSQL engine with connection pooling")
        return engine

    kwargs = {"connect_args": {"check_same_thread": False}, "echo": echo}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    logger.info("Created SQLite engine")
    return engine


# =============================================================================
# SESSION MANAGEMENT
# =============================================================================

class Database:
    """
    Engine plus session factory.

    Usage:
        db = Database("sqlite://")
        db.create_all()
        with db.session_scope() as session:
            session.add(row)
    """

    def __init__(self, url: Optional[str] = None, echo: bool = False):
        self.url = get_database_url(url)
        self.engine = create_db_engine(self.url, echo=echo)
        self._session_factory = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    def create_all(self):
        """Create tables that do not exist yet."""
        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        """Raw session (caller responsible for lifecycle)."""
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Session that commits on success and rolls back on error."""
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def dispose(self):
        self.engine.dispose()


def init_database(url: Optional[str] = None) -> Database:
    """Create a Database and its tables."""
    database = Database(url, echo=os.getenv("SQL_DEBUG", "false").lower() == "true")
    database.create_all()
    return database
