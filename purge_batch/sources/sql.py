"""
SqlChunkSource -- keyset-paginated chunk source over a SQL table.

Contract:
    Translates a SelectionQuery into
    ``SELECT <id> FROM <source> WHERE (<filter>) AND <id> > :after
    ORDER BY <id> LIMIT :n`` and fetches one page per chunk, so peak memory
    is one chunk regardless of how many rows match.  Keyset (not OFFSET)
    pagination keeps pages stable while earlier chunks are being deleted.

    Rows already soft-deleted (``is_deleted`` true) are excluded when the
    table carries that column.

Failure modes:
    - SourceError if the table does not exist, the filter references a
      missing column, or the database rejects the statement.  Each page runs
      in a SAVEPOINT so the session stays usable after the failure.

Non-goals:
    - The WHERE filter is passed through verbatim; descriptors are trusted
      operator input, not end-user input.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from sqlalchemy.orm import Session

from purge_kernel.exceptions import SourceError
from purge_kernel.logging_config import get_logger

from purge_batch.domain.selection import SelectionQuery
from purge_batch.sources.base import ChunkCursor

logger = get_logger("batch.source")

SOFT_DELETE_FLAG = "is_deleted"
SOFT_DELETE_STAMP = "deleted_at"


def table_columns(session: Session, table: str) -> set[str]:
    """Lower-cased column names of ``table``.

    Raises:
        SourceError: If the table does not exist.
    """
    try:
        columns = inspect(session.connection()).get_columns(table)
    except NoSuchTableError:
        raise SourceError(table, "no such table") from None
    except SQLAlchemyError as exc:
        raise SourceError(table, str(exc)) from exc
    if not columns:
        raise SourceError(table, "no such table")
    return {c["name"].lower() for c in columns}


class _SelectionStatement:
    """Quoted SQL fragments for one selection."""

    def __init__(self, session: Session, query: SelectionQuery, columns: set[str]):
        if query.id_column.lower() not in columns:
            raise SourceError(
                query.source, f"identifier field '{query.id_column}' does not exist",
            )
        quote = session.get_bind().dialect.identifier_preparer.quote
        self.table = quote(query.source)
        self.id_col = quote(query.id_column)

        conditions: list[str] = []
        if query.where:
            conditions.append(f"({query.where})")
        if SOFT_DELETE_FLAG in columns:
            flag = quote(SOFT_DELETE_FLAG)
            conditions.append(f"({flag} IS NULL OR {flag} = :not_deleted)")
        self.conditions = conditions
        self.params: dict[str, Any] = (
            {"not_deleted": False} if SOFT_DELETE_FLAG in columns else {}
        )

    def page(self, after: Any, size: int) -> tuple[str, dict[str, Any]]:
        conditions = list(self.conditions)
        params = dict(self.params, n=size)
        if after is not None:
            conditions.append(f"{self.id_col} > :after")
            params["after"] = after
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        sql = f"SELECT {self.id_col} FROM {self.table}{where} ORDER BY {self.id_col} LIMIT :n"
        return sql, params

    def count(self) -> tuple[str, dict[str, Any]]:
        where = f" WHERE {' AND '.join(self.conditions)}" if self.conditions else ""
        return f"SELECT COUNT(*) FROM {self.table}{where}", dict(self.params)


class KeysetCursor(ChunkCursor):
    """Cursor fetching one keyset page per chunk."""

    def __init__(
        self,
        session: Session,
        query: SelectionQuery,
        statement: _SelectionStatement,
        chunk_size: int,
        resume_after: Any = None,
    ):
        super().__init__(chunk_size, limit=query.limit, resume_after=resume_after)
        self._session = session
        self._query = query
        self._statement = statement

    def _fetch(self, size: int) -> list[Any]:
        sql, params = self._statement.page(self.position, size)
        savepoint = self._session.begin_nested()
        try:
            rows = self._session.execute(text(sql), params).all()
        except SQLAlchemyError as exc:
            savepoint.rollback()
            logger.warning(
                "source_page_failed",
                extra={"source": self._query.source, "after": self.position},
            )
            raise SourceError(self._query.source, str(exc)) from exc
        savepoint.commit()
        return [row[0] for row in rows]


class SqlChunkSource:
    """ChunkSource reading identifiers from the table named by the query."""

    def __init__(self, session: Session):
        self._session = session

    def _statement(self, query: SelectionQuery) -> _SelectionStatement:
        columns = table_columns(self._session, query.source)
        return _SelectionStatement(self._session, query, columns)

    def open(
        self,
        query: SelectionQuery,
        chunk_size: int,
        resume_after: Any = None,
    ) -> KeysetCursor:
        statement = self._statement(query)
        logger.debug(
            "source_opened",
            extra={
                "source": query.source,
                "chunk_size": chunk_size,
                "resume_after": resume_after,
            },
        )
        return KeysetCursor(
            self._session, query, statement, chunk_size, resume_after=resume_after,
        )

    def count(self, query: SelectionQuery) -> int | None:
        """Count matching rows.

        Raises:
            SourceError: If the selection cannot be executed.
        """
        sql, params = self._statement(query).count()
        savepoint = self._session.begin_nested()
        try:
            total = self._session.execute(text(sql), params).scalar_one()
        except SQLAlchemyError as exc:
            savepoint.rollback()
            raise SourceError(query.source, str(exc)) from exc
        savepoint.commit()
        if query.limit is not None:
            return min(total, query.limit)
        return total
