"""
Engine and session management for purge jobs.

A job processes each record inside its own SAVEPOINT, so every engine built
here must support real nested transactions.  pysqlite does not by default
(it defers BEGIN and silently commits around SAVEPOINT), so SQLite engines
get their transaction handling taken over: the driver's implicit
transactions are switched off and BEGIN is emitted by SQLAlchemy.

The process-wide engine set by ``init_engine_from_url`` is what the CLI and
``session_scope`` use.  Library callers and tests can skip it and pass their
own Session to the orchestrator.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from purge_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")


@dataclass
class _Database:
    engine: Engine
    sessions: sessionmaker[Session]


_current: _Database | None = None


def _take_over_sqlite_transactions(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """Create an engine for ``database_url`` without registering it.

    In-memory SQLite shares one connection (StaticPool) so the schema outlives
    the first session.  ``pool_options`` go to ``create_engine`` for
    server backends, e.g. ``pool_size`` or ``max_overflow``.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        pool_options.setdefault("pool_pre_ping", True)
        return create_engine(url, echo=echo, **pool_options)

    sqlite_options: dict = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        sqlite_options["poolclass"] = StaticPool
    engine = create_engine(url, echo=echo, **sqlite_options)
    _take_over_sqlite_transactions(engine)
    return engine


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """Build the process-wide engine, replacing any earlier one."""
    global _current

    if _current is not None:
        _current.engine.dispose()
    engine = build_engine(database_url, echo=echo, **pool_options)
    _current = _Database(engine, sessionmaker(bind=engine, expire_on_commit=False))

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name})
    return engine


def _require() -> _Database:
    if _current is None:
        raise RuntimeError("No database configured; call init_engine_from_url() first.")
    return _current


def get_engine() -> Engine:
    return _require().engine


def get_session() -> Session:
    return _require().sessions()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Commit on clean exit, roll back and re-raise on error, always close."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create the status tables of every imported model module."""
    from purge_kernel.db.base import Base

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    from purge_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose and forget the process-wide engine."""
    global _current

    if _current is not None:
        _current.engine.dispose()
        _current = None
