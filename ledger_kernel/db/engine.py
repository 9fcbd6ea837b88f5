"""
Module: ledger_kernel.db.engine
Responsibility: One process-wide engine and session factory, plus the
    unit-of-work helper callers wrap around service calls.
Architecture position: Kernel > DB.  MUST NOT import from services/ or
    selectors/ (models are imported lazily for table creation).

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED; services take explicit row
      locks (SELECT ... FOR UPDATE) where they need more.
    - SQLite connections honour SAVEPOINT: pysqlite's implicit BEGIN is
      disabled and the engine emits BEGIN itself.
    - Immutability listeners are registered whenever an engine is created.
    - Only session_scope() commits.  Services flush and use savepoints.

Failure modes:
    - RuntimeError when a session or table operation is requested before
      init_engine_from_url().
"""

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

POSTGRES_POOL_DEFAULTS: dict[str, Any] = {
    "pool_size": 10,
    "max_overflow": 5,
    "pool_pre_ping": True,
    "pool_recycle": 1800,
}


def _enable_sqlite_savepoints(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options: Any) -> Engine:
    """
    Create the engine and session factory for ``database_url``.

    Args:
        database_url: ``postgresql://...`` (psycopg2) or ``sqlite:///...``.
        echo: Log every SQL statement through SQLAlchemy's logger.
        pool_options: Overrides for POSTGRES_POOL_DEFAULTS.  Ignored for
            SQLite.

    Returns:
        The new engine.  Any previous engine is disposed.
    """
    global _engine, _session_factory

    reset_engine()
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, echo=echo)
        _enable_sqlite_savepoints(engine)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            isolation_level="READ COMMITTED",
            **{**POSTGRES_POOL_DEFAULTS, **pool_options},
        )

    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    from ledger_kernel.db.immutability import register_immutability_listeners

    register_immutability_listeners()
    configure_logging()
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name})
    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """New session from the process-wide factory."""
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Unit of work: commit on success, roll back and re-raise on error.

    Usage:
        with session_scope() as session:
            result = PostingEngine(session).post(draft)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("unit_of_work_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create accounts, transactions, ledger_lines and sequence_counters."""
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401  (registers mappers)

    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop every ledger table.  Tests and local resets only."""
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
