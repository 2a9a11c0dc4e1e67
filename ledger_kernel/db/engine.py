"""
Module: ledger_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  This is the single point of database
    connection configuration for the ledger.
Architecture position: Kernel > DB.  May import from db/base.py and
    ledger_kernel.exceptions.  MUST NOT import from models/, services/,
    selectors/ or domain/ (except create_tables, which imports the ORM
    registry lazily).

Invariants enforced:
    - Every ledger transaction is serialized per document:
        * PostgreSQL: READ COMMITTED + SELECT ... FOR UPDATE on the document
          row(s), with ``SET LOCAL lock_timeout`` bounding the wait.
        * SQLite: every transaction starts with BEGIN IMMEDIATE, so the
          database write lock is held from the first read until commit.
    - Lock timeouts, deadlocks, serialization failures and "database is
      locked" surface as ConcurrencyConflictError, never as raw driver
      errors.

Failure modes:
    - RuntimeError if get_engine/get_session_factory called before
      init_engine_from_url().
    - ConcurrencyConflictError from session_scope() on lock contention.
"""

import atexit
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.exceptions import ConcurrencyConflictError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.engine")

# Module-level engine and session factory
_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

# PostgreSQL SQLSTATEs that mean "retry the whole transaction"
_RETRYABLE_PG_CODES = frozenset({
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available (lock_timeout)
})


def _install_sqlite_serialization(engine: Engine) -> None:
    """Take over pysqlite's transaction handling and begin IMMEDIATE."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Disable pysqlite's implicit BEGIN so the "begin" hook controls it
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _install_postgres_lock_timeout(engine: Engine, lock_timeout_seconds: float) -> None:
    timeout_ms = int(lock_timeout_seconds * 1000)

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql(f"SET LOCAL lock_timeout = {timeout_ms}")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    lock_timeout_seconds: float = 5.0,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    Supports ``sqlite:///path.db`` (embedded, single file) and
    ``postgresql://...`` (server, psycopg2 driver).  Calling twice overwrites the
    first engine.

    Args:
        database_url: SQLAlchemy connection URL.
        echo: If True, log all SQL statements.
        pool_size: Connections to keep in the pool (PostgreSQL only).
        max_overflow: Max connections beyond pool_size (PostgreSQL only).
        pool_pre_ping: Test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        lock_timeout_seconds: Bound on how long a transaction waits for a
            document lock before failing with ConcurrencyConflictError.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    _engine = build_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        lock_timeout_seconds=lock_timeout_seconds,
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)
    return _engine


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    lock_timeout_seconds: float = 5.0,
) -> Engine:
    """Create a configured engine without registering it module-wide."""
    kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": pool_pre_ping}

    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {
            "timeout": lock_timeout_seconds,
            "check_same_thread": False,
        }
        engine = create_engine(database_url, **kwargs)
        _install_sqlite_serialization(engine)
    else:
        engine = create_engine(
            database_url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            isolation_level="READ COMMITTED",
            **kwargs,
        )
        if engine.dialect.name == "postgresql":
            _install_postgres_lock_timeout(engine, lock_timeout_seconds)

    logger.info(
        "engine_initialized",
        extra={
            "dialect": engine.dialect.name,
            "pool_size": pool_size,
            "lock_timeout_seconds": lock_timeout_seconds,
            "echo": echo,
        },
    )
    return engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory for creating sessions.

    Each engine operation opens its own session from this factory, so
    concurrent callers never share a session.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def is_concurrency_failure(exc: BaseException) -> bool:
    """True if a driver error means the transaction lost a lock race."""
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _RETRYABLE_PG_CODES:
        return True
    if isinstance(exc, OperationalError):
        message = str(orig).lower()
        return "database is locked" in message or "deadlock" in message
    return False


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session] | None = None,
    operation: str = "transaction",
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  Lock-contention
        driver errors are re-raised as ConcurrencyConflictError; everything
        else propagates unchanged.

    Usage:
        with session_scope(factory, "create_payment") as session:
            store = LedgerStore(session, kind)
            ...
    """
    factory = session_factory or get_session_factory()
    session = factory()
    logger.debug("transaction_started", extra={"operation": operation})
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed", extra={"operation": operation})
    except DBAPIError as exc:
        session.rollback()
        if is_concurrency_failure(exc):
            logger.warning(
                "transaction_conflict",
                extra={"operation": operation, "reason": str(exc.orig)},
            )
            raise ConcurrencyConflictError(operation, reason=str(exc.orig)) from exc
        logger.warning("transaction_rolled_back", extra={"operation": operation}, exc_info=True)
        raise
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", extra={"operation": operation})
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """
    Create all ledger tables.

    Imports every module ORM model first so Base.metadata contains the
    receivable and payable tables.
    """
    from ledger_kernel.db.base import Base
    from ledger_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    from ledger_kernel.db.base import Base
    from ledger_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.drop_all(engine or get_engine())


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


def _atexit_dispose():
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)
