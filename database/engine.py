"""
Database Persistence Layer - Core Engine.

============================================================
CATALOG BACKEND ACCESS
============================================================

This module owns connection acquisition and transaction
boundaries for the catalog engines.

Requirements:
- SQLAlchemy Core engine with connection pooling
- One connection per catalog operation, released on every
  exit path
- Explicit transactions: begin, commit on success, rollback
  on any failure
- A failed rollback is logged, never raised over the
  original error
- On a single shared connection (in-memory SQLite) every
  scope holds the engine's connection guard, so a read
  closing its connection cannot roll back a write running
  in another thread

============================================================
"""

import os
import logging
import threading
import weakref
from typing import Any, ContextManager, Optional, Generator
from contextlib import contextmanager, nullcontext

from sqlalchemy import create_engine, text, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError, OperationalError
from sqlalchemy.pool import QueuePool, StaticPool

from dotenv import load_dotenv

from core.exceptions import (
    CatalogException,
    CatalogTransactionError,
    DatabaseConnectionError,
)

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///catalog.db"

# =============================================================
# DATABASE ENGINE
# =============================================================

_engine: Optional[Engine] = None


def get_database_url() -> str:
    """Get database URL from environment."""
    url = os.getenv("CATALOG_DATABASE_URL") or os.getenv("DATABASE_URL")
    if url and url.startswith("postgresql+asyncpg"):
        # Catalog operations are synchronous
        url = url.replace("postgresql+asyncpg", "postgresql")

    if not url:
        url = DEFAULT_DATABASE_URL
        logger.warning(f"CATALOG_DATABASE_URL not set, using default: {url}")

    return url


def _is_sqlite_memory(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///") or (url.startswith("sqlite") and ":memory:" in url)


def create_database_engine(
    database_url: Optional[str] = None,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    echo: bool = False,
) -> Engine:
    """
    Create SQLAlchemy engine with connection pooling.

    Args:
        database_url: SQLAlchemy URL (defaults to get_database_url())
        pool_size: Number of connections to keep in pool
        max_overflow: Max connections beyond pool_size
        pool_timeout: Seconds to wait for available connection
        pool_recycle: Recycle connections after N seconds
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    database_url = database_url or get_database_url()

    logger.info(f"Creating database engine for: {database_url.split('@')[-1]}")

    if _is_sqlite_memory(database_url):
        # One shared connection, otherwise every checkout sees an empty database
        engine = create_engine(
            database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
    elif database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
    else:
        engine = create_engine(
            database_url,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            echo=echo,
        )

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Database connection established")

    @event.listens_for(engine, "checkout")
    def on_checkout(dbapi_conn, connection_record, connection_proxy):
        logger.debug("Database connection checked out from pool")

    return engine


def get_engine() -> Engine:
    """Get the process-wide engine, creating it if necessary."""
    global _engine
    if _engine is None:
        _engine = create_database_engine()
    return _engine


def set_engine(engine: Optional[Engine]) -> None:
    """Replace the process-wide engine."""
    global _engine
    _engine = engine


def dispose_engine() -> None:
    """Dispose the process-wide engine and its pool."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        logger.info("Database engine disposed")
        _engine = None


# =============================================================
# CONNECTION & TRANSACTION SCOPES
# =============================================================


_shared_connection_locks: "weakref.WeakKeyDictionary[Engine, threading.RLock]" = weakref.WeakKeyDictionary()
_shared_connection_locks_guard = threading.Lock()


def connection_guard(engine: Engine) -> ContextManager:
    """
    Lock serializing all use of an engine's connection.

    Only engines pooling a single shared DBAPI connection
    (StaticPool) need one; every other engine gets a no-op.
    Hold it from checkout until the connection is returned,
    since reset-on-return rolls the shared connection back.
    """
    if not isinstance(engine.pool, StaticPool):
        return nullcontext()
    with _shared_connection_locks_guard:
        lock = _shared_connection_locks.get(engine)
        if lock is None:
            lock = threading.RLock()
            _shared_connection_locks[engine] = lock
        return lock


def _close_quietly(conn: Connection) -> None:
    try:
        conn.close()
    except SQLAlchemyError as e:
        logger.warning(f"Failed to release connection: {e}")


@contextmanager
def connection_scope(
    engine: Engine,
    operation: str,
    product_id: Optional[Any] = None,
) -> Generator[Connection, None, None]:
    """
    Context manager for read operations.

    Backend errors are re-raised as CatalogException carrying the
    operation name. The connection is always released.

    Usage:
        with connection_scope(engine, "get_product_by_id", 7) as conn:
            row = conn.execute(stmt, params).first()
    """
    with connection_guard(engine):
        try:
            conn = engine.connect()
        except SQLAlchemyError as e:
            logger.error(f"{operation}: cannot acquire connection: {e}")
            raise DatabaseConnectionError(f"Cannot acquire connection: {e}", operation) from e

        try:
            yield conn
        except SQLAlchemyError as e:
            logger.error(f"{operation} failed: {e}", exc_info=True)
            raise CatalogException(str(e), operation, product_id) from e
        finally:
            _close_quietly(conn)


@contextmanager
def transaction_scope(
    engine: Engine,
    operation: str,
    product_id: Optional[Any] = None,
) -> Generator[Connection, None, None]:
    """
    Context manager for explicit transaction boundaries.

    Commits only if no exception occurs.
    Rolls back on ANY exception; a failed rollback is logged and
    swallowed so the caller sees the original error.

    Catalog exceptions raised inside the block are re-raised as is
    after the rollback; anything else is wrapped in
    CatalogTransactionError.

    Usage:
        with transaction_scope(engine, "modify_product", 7) as conn:
            conn.execute(update_stmt, params)
            conn.execute(delete_stmt, params)
            # Commits automatically at end
    """
    with connection_guard(engine):
        try:
            conn = engine.connect()
        except SQLAlchemyError as e:
            logger.error(f"{operation}: cannot acquire connection: {e}")
            raise CatalogTransactionError(operation, product_id, e) from e

        try:
            conn.begin()
            yield conn
            conn.commit()
            logger.debug(f"{operation}: transaction committed")
        except Exception as e:
            logger.error(f"{operation} failed, rolling back: {e}", exc_info=True)
            try:
                conn.rollback()
            except Exception as rollback_error:
                logger.warning(f"Unable to rollback {operation} transaction: {rollback_error}")
            if isinstance(e, CatalogException):
                raise
            raise CatalogTransactionError(operation, product_id, e) from e
        finally:
            _close_quietly(conn)


# =============================================================
# VERIFICATION
# =============================================================


def verify_database_connection(engine: Optional[Engine] = None) -> bool:
    """
    Verify database connection is working.

    Returns:
        True if connection successful

    Raises:
        DatabaseConnectionError if connection fails
    """
    engine = engine or get_engine()

    try:
        with connection_guard(engine), engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
            logger.info("Database connection verified successfully")
            return True
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        raise DatabaseConnectionError(f"Cannot connect to database: {e}", "verify_connection") from e


__all__ = [
    "DEFAULT_DATABASE_URL",
    "get_database_url",
    "create_database_engine",
    "get_engine",
    "set_engine",
    "dispose_engine",
    "connection_guard",
    "connection_scope",
    "transaction_scope",
    "verify_database_connection",
]
