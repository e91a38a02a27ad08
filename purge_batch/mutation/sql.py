"""
SqlMutationExecutor -- SAVEPOINT-per-record deletion against a SQL table.

Contract:
    - Soft delete sets ``is_deleted`` (and ``deleted_at`` when present); the
      row stays recoverable.  Hard delete issues DELETE and is flagged
      irreversible in the ChunkResult.
    - all_or_none=False: each record runs in its own SAVEPOINT; one failure
      rolls back only that record.
    - all_or_none=True: the chunk runs inside one outer SAVEPOINT; on the
      first failure the whole chunk is rolled back and every record is
      reported failed.
    - Dry runs are delegated to DryRunExecutor.

Failure modes:
    - ENTITY_IS_DELETED when the row is missing or already soft-deleted.
    - DELETE_FAILED when the database rejects the statement (e.g. FK).
    - Guard-supplied codes when a RecordGuard raises RecordMutationError.
    - UNHANDLED_EXCEPTION when a guard (or anything else in the record's
      SAVEPOINT) raises an unexpected exception; the SAVEPOINT is rolled back.
    - SourceError (fatal) when the table cannot be soft-deleted at all.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from typing import Sequence

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from purge_kernel.domain.clock import Clock, SystemClock
from purge_kernel.exceptions import RecordMutationError, SourceError
from purge_kernel.logging_config import get_logger

from purge_batch.domain.config import JobConfiguration
from purge_batch.domain.types import (
    DELETE_FAILED,
    ENTITY_IS_DELETED,
    UNHANDLED_EXCEPTION,
    ChunkResult,
    MutationOperation,
    RecordOutcome,
)
from purge_batch.mutation.base import DryRunExecutor, RecordGuard, rolled_back_chunk
from purge_batch.sources.sql import SOFT_DELETE_FLAG, SOFT_DELETE_STAMP, table_columns

logger = get_logger("batch.mutation")


class SqlMutationExecutor:
    """Deletes records from the table named by the job's selection."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        guards: Sequence[RecordGuard] = (),
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._guards = tuple(guards)
        self._dry_run = DryRunExecutor()
        self._statements: dict[tuple[str, MutationOperation], tuple[str, bool]] = {}

    def execute(self, chunk: Sequence[str], config: JobConfiguration) -> ChunkResult:
        operation = config.operation
        if operation == MutationOperation.DRY_RUN:
            return self._dry_run.execute(chunk, config)

        sql, stamps = self._statement(config)
        if config.all_or_none:
            return self._execute_atomic(chunk, config, sql, stamps)

        entries = tuple(
            self._mutate_one(identifier, config, sql, stamps) for identifier in chunk
        )
        return ChunkResult(
            entries=entries,
            operation=operation,
            irreversible=(
                operation == MutationOperation.HARD_DELETE
                and any(e.success for e in entries)
            ),
        )

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _execute_atomic(
        self,
        chunk: Sequence[str],
        config: JobConfiguration,
        sql: str,
        stamps: bool,
    ) -> ChunkResult:
        outer = self._session.begin_nested()
        try:
            for identifier in chunk:
                outcome = self._mutate_one(identifier, config, sql, stamps)
                if not outcome.success:
                    outer.rollback()
                    logger.info(
                        "chunk_rolled_back",
                        extra={
                            "identifier": identifier,
                            "error_code": outcome.error_code,
                            "chunk_size": len(chunk),
                        },
                    )
                    return rolled_back_chunk(chunk, outcome, config.operation)
        except Exception:
            if outer.is_active:
                outer.rollback()
            raise
        outer.commit()
        return ChunkResult(
            entries=tuple(RecordOutcome.ok(identifier) for identifier in chunk),
            operation=config.operation,
            irreversible=config.operation == MutationOperation.HARD_DELETE,
        )

    def _mutate_one(
        self,
        identifier: str,
        config: JobConfiguration,
        sql: str,
        stamps: bool,
    ) -> RecordOutcome:
        savepoint = self._session.begin_nested()
        try:
            for guard in self._guards:
                guard(identifier, config)
            params = {"id": identifier}
            if config.operation == MutationOperation.SOFT_DELETE:
                params["deleted"] = True
                params["not_deleted"] = False
                if stamps:
                    params["now"] = self._clock.now()
            rowcount = self._session.execute(text(sql), params).rowcount
            if rowcount == 0:
                raise RecordMutationError(identifier, ENTITY_IS_DELETED)
        except RecordMutationError as exc:
            savepoint.rollback()
            return RecordOutcome.failure(
                identifier, exc.error_code, exc.failed_fields, message=str(exc),
            )
        except SQLAlchemyError as exc:
            savepoint.rollback()
            return RecordOutcome.failure(identifier, DELETE_FAILED, message=str(exc))
        except Exception as exc:
            savepoint.rollback()
            logger.exception("record_mutation_crashed", extra={"identifier": identifier})
            return RecordOutcome.failure(
                identifier, UNHANDLED_EXCEPTION, message=f"{type(exc).__name__}: {exc}",
            )
        savepoint.commit()
        return RecordOutcome.ok(identifier)

    def _statement(self, config: JobConfiguration) -> tuple[str, bool]:
        """Build (and cache) the per-record statement for this table/operation."""
        query = config.query
        key = (query.source, config.operation)
        if key in self._statements:
            return self._statements[key]

        columns = table_columns(self._session, query.source)
        quote = self._session.get_bind().dialect.identifier_preparer.quote
        table = quote(query.source)
        id_col = quote(query.id_column)
        stamps = False

        if config.operation == MutationOperation.HARD_DELETE:
            sql = f"DELETE FROM {table} WHERE {id_col} = :id"
        else:
            if SOFT_DELETE_FLAG not in columns:
                raise SourceError(
                    query.source,
                    f"soft delete needs a '{SOFT_DELETE_FLAG}' column; "
                    f"use hard delete for this source",
                )
            flag = quote(SOFT_DELETE_FLAG)
            assignments = f"{flag} = :deleted"
            stamps = SOFT_DELETE_STAMP in columns
            if stamps:
                assignments += f", {quote(SOFT_DELETE_STAMP)} = :now"
            sql = (
                f"UPDATE {table} SET {assignments} "
                f"WHERE {id_col} = :id AND ({flag} IS NULL OR {flag} = :not_deleted)"
            )

        self._statements[key] = (sql, stamps)
        return sql, stamps
