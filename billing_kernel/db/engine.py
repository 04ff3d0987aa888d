"""
Module: billing_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  This is the single point of database
    connection configuration for the kernel and the API.
Architecture position: Kernel > DB.  May import from db/base.py, config.py
    and logging_config.py.  MUST NOT import from services/ or selectors/
    (create_tables imports models lazily so Base.metadata is populated).

Invariants enforced:
    - PostgreSQL is the production backend: READ COMMITTED sessions with
      explicit row-level locking (SELECT ... FOR UPDATE) on counter, period
      and scope rows, plus partial unique indexes as a backstop.
    - SQLite is accepted for tests and local runs.  The pysqlite driver is
      switched to explicit BEGIN so that SAVEPOINTs behave.
    - Every mutation runs inside exactly one transaction: session_scope()
      and run_in_transaction() commit on success and roll back on any
      exception, so no partially applied cascade is ever visible.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory called before
      init_engine_from_url().
    - ConcurrencyConflictError from run_in_transaction() once the retry
      budget for serialization failures / deadlocks / unique conflicts is
      exhausted.
"""

import atexit
import time
from contextlib import contextmanager
from typing import Callable, Generator, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from billing_kernel.config import BillingSettings
from billing_kernel.exceptions import ConcurrencyConflictError
from billing_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

T = TypeVar("T")

# Module-level engine and session factory
_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None
_transaction_retries: int = 3

# PostgreSQL SQLSTATEs worth re-running the whole unit of work for
_RETRYABLE_PGCODES = frozenset({
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "23505",  # unique_violation (lost a create race)
})


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    """Let SQLAlchemy own BEGIN on pysqlite so SAVEPOINT works."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    transaction_retries: int = 3,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    Postconditions: Module-level _engine and _SessionFactory are initialized.
        A second call replaces the first.

    Args:
        database_url: PostgreSQL URL in production; ``sqlite://`` for tests.
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool (PostgreSQL).
        max_overflow: Max connections beyond pool_size (PostgreSQL).
        pool_pre_ping: Test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        transaction_retries: Attempts granted to run_in_transaction().

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory, _transaction_retries

    if database_url.startswith("sqlite"):
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        _install_sqlite_transaction_hooks(_engine)
        dialect = "sqlite"
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )
        dialect = _engine.dialect.name

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)
    _transaction_retries = transaction_retries

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size,
            "echo": echo,
        },
    )

    return _engine


def init_engine(settings: BillingSettings) -> Engine:
    """Initialize the engine (and logging) from loaded settings."""
    configure_logging(level=settings.log_level)
    return init_engine_from_url(
        settings.database_url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        transaction_retries=settings.transaction_retries,
    )


def engine_initialized() -> bool:
    return _engine is not None


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory.

    Useful for multi-threaded scenarios where each thread needs its own session.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed, and the
        exception is re-raised to the caller.

    Usage:
        with session_scope() as session:
            DocumentFactory(session, clock).create_document(...)
    """
    session = get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back")
        raise
    finally:
        session.close()


def is_retryable(exc: Exception) -> bool:
    """True when a failed transaction may succeed if run again from scratch."""
    if not isinstance(exc, DBAPIError):
        return False
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode is not None:
        return pgcode in _RETRYABLE_PGCODES
    if isinstance(exc, IntegrityError):
        return "unique" in str(exc.orig).lower()
    if isinstance(exc, OperationalError):
        return "locked" in str(exc.orig).lower()
    return False


def run_in_transaction(
    work: Callable[[Session], T],
    *,
    operation: str,
    retries: int | None = None,
) -> T:
    """
    Run ``work`` in its own transaction, retrying the whole unit on conflict.

    Each attempt gets a fresh session; nothing from a failed attempt
    survives the rollback, so re-running is always safe.

    Raises:
        ConcurrencyConflictError: retryable failures on every attempt.
        Any non-retryable exception raised by ``work`` (after rollback).
    """
    attempts = retries or _transaction_retries

    for attempt in range(1, attempts + 1):
        session = get_session()
        try:
            result = work(session)
            session.commit()
            return result
        except DBAPIError as exc:
            session.rollback()
            if not is_retryable(exc):
                raise
            logger.warning(
                "transaction_retry",
                extra={
                    "operation": operation,
                    "attempt": attempt,
                    "max_attempts": attempts,
                    "error": type(exc.orig).__name__,
                },
            )
            if attempt < attempts:
                time.sleep(0.05 * attempt)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    raise ConcurrencyConflictError(operation, attempts)


def create_tables() -> None:
    """
    Create all tables defined in the models.

    Preconditions: Engine must be initialized via init_engine_from_url().
    """
    from billing_kernel.db.base import Base
    import billing_kernel.models  # noqa: F401  (populates Base.metadata)

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from billing_kernel.db.base import Base
    import billing_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """
    Reset the engine and session factory.

    Useful for test cleanup.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose() -> None:
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)
