"""
SQLAlchemy engine initialization, session factory and transactional scope.

Single point of database configuration. PostgreSQL is the production backend;
SQLite is accepted for tests and local runs. For SQLite the pysqlite driver's
implicit transaction handling is switched off and BEGIN is emitted explicitly,
so SAVEPOINTs (used per batch item and per imported row) nest correctly.

Services never commit. The caller owns the transaction, normally through
``session_scope()``.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from rental_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _enable_sqlite_savepoints(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, echo: bool = False, **engine_kwargs) -> Engine:
    """
    Create an engine for ``database_url`` without registering it globally.

    PostgreSQL engines get pre-ping and READ COMMITTED isolation; row locks
    (``SELECT ... FOR UPDATE``) provide the stronger guarantees where needed.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, echo=echo, **engine_kwargs)
        _enable_sqlite_savepoints(engine)
        return engine

    engine_kwargs.setdefault("pool_size", 10)
    engine_kwargs.setdefault("max_overflow", 10)
    engine_kwargs.setdefault("pool_recycle", 1800)
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        isolation_level="READ COMMITTED",
        **engine_kwargs,
    )


def init_engine_from_url(database_url: str, echo: bool = False, **engine_kwargs) -> Engine:
    """
    Initialize the module-level engine and session factory.

    Calling it again replaces the previous engine.

    Args:
        database_url: SQLAlchemy URL (``postgresql://...`` or ``sqlite://...``).
        echo: If True, log all SQL statements.
        **engine_kwargs: Extra ``create_engine`` options (pool sizing etc.).

    Returns:
        The SQLAlchemy Engine.
    """
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()

    _engine = build_engine(database_url, echo=echo, **engine_kwargs)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


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
    """Session factory, for callers that open one session per thread."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Transactional scope around a series of operations.

    Commits on normal exit. On exception, rolls back, logs a warning and
    re-raises.

    Usage:
        with session_scope() as session:
            InvoiceService(session).create_invoice(request)
    """
    session = get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every billing and batch table on the current engine."""
    from rental_kernel.db.base import Base
    import rental_batch.models.batch  # noqa: F401
    import rental_modules.billing.orm  # noqa: F401

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from rental_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None
