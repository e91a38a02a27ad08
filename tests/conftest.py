"""
Pytest fixtures shared by the purge test suite.

Provides:
- In-memory SQLite engine/session with working SAVEPOINTs
- A small record store (``contact`` with soft-delete columns, ``audit_note``
  without) plus a trigger that rejects changes to locked contacts
- Structured-log capture
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO

import pytest
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    insert,
)
from sqlalchemy.orm import sessionmaker

import purge_batch.models  # noqa: F401  (registers status tables on Base)
from purge_kernel.db.base import Base
from purge_kernel.db.engine import build_engine
from purge_kernel.domain.clock import DeterministicClock
from purge_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

RECORDS = MetaData()

contact = Table(
    "contact",
    RECORDS,
    Column("id", Integer, primary_key=True),
    Column("name", String(100)),
    Column("status", String(20)),
    Column("locked", Boolean, default=False),
    Column("is_deleted", Boolean, default=False),
    Column("deleted_at", DateTime(timezone=True)),
)

audit_note = Table(
    "audit_note",
    RECORDS,
    Column("id", Integer, primary_key=True),
    Column("body", Text),
)

_LOCK_TRIGGERS = (
    """
    CREATE TRIGGER contact_locked_delete BEFORE DELETE ON contact
    WHEN OLD.locked = 1
    BEGIN SELECT RAISE(ABORT, 'record is locked'); END
    """,
    """
    CREATE TRIGGER contact_locked_update BEFORE UPDATE ON contact
    WHEN OLD.locked = 1
    BEGIN SELECT RAISE(ABORT, 'record is locked'); END
    """,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """JSON logging at DEBUG for the whole run."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Each test starts with no job context bound."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture purge_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            assert any(r["message"] == "job_finished" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("purge_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _parsed() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield _parsed

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    Base.metadata.create_all(eng)
    RECORDS.create_all(eng)
    with eng.begin() as conn:
        for ddl in _LOCK_TRIGGERS:
            conn.exec_driver_sql(ddl)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return DeterministicClock(
        fixed_time=datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def seed_contacts(db_session):
    """Insert contacts 1..count; ``locked`` and ``stale`` take id collections."""

    def _seed(count: int, locked=(), stale=None, deleted=()):
        stale_ids = set(range(1, count + 1)) if stale is None else set(stale)
        rows = [
            {
                "id": i,
                "name": f"contact-{i:05d}",
                "status": "stale" if i in stale_ids else "active",
                "locked": i in set(locked),
                "is_deleted": i in set(deleted),
            }
            for i in range(1, count + 1)
        ]
        if rows:
            db_session.execute(insert(contact), rows)
        db_session.flush()

    return _seed


@pytest.fixture
def contact_table():
    return contact


@pytest.fixture
def audit_note_table():
    return audit_note


@pytest.fixture
def records_database(tmp_path):
    """File-backed SQLite URL holding 20 stale contacts (id 13 locked)."""
    from purge_kernel.db.engine import reset_engine

    url = f"sqlite:///{tmp_path / 'records.db'}"
    eng = build_engine(url)
    RECORDS.create_all(eng)
    with eng.begin() as conn:
        for ddl in _LOCK_TRIGGERS:
            conn.exec_driver_sql(ddl)
        conn.execute(
            insert(contact),
            [
                {"id": i, "name": f"contact-{i:05d}", "status": "stale",
                 "locked": i == 13, "is_deleted": False}
                for i in range(1, 21)
            ],
        )
    eng.dispose()
    yield url
    reset_engine()
