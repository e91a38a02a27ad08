"""
BatchJobRunner -- chunk loop and job state machine.

Contract:
    ``run(config)`` drives INIT -> RUNNING -> FINALIZING -> DONE, with a side
    exit RUNNING -> ABORTED -> DONE.  Chunks are processed one at a time; the
    runner is the only writer of JobState and folds each ChunkResult before
    the next chunk is pulled.

Failure semantics:
    - Record failures are absorbed into the counters and the capped error log.
    - SourceError (opening or paging the selection) aborts the job.
    - With all_or_none in JOB scope, the first chunk containing a failure is
      rolled back by the executor and the job aborts before the next chunk.
      In CHUNK scope the rolled-back chunk is counted and the job continues.
    - An executor that raises, or that drops identifiers, is a fatal chunk
      failure: the chunk is counted as failed and the job aborts.
    - A set ``cancel_event`` is honoured between chunks; the job still
      finalizes with its partial state.
    - Nothing raised by the reporter reaches the caller.

Transactions:
    The runner never commits on its own.  A ``checkpoint`` callable, when
    given, is invoked once the status row exists, once it is RUNNING and
    after every chunk has been folded and its progress written, so a host
    can commit there and make the status record visible to other sessions
    while the job runs.  Errors raised by the checkpoint propagate.

Non-goals:
    - Does NOT run chunks concurrently.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Sequence
from uuid import UUID, uuid4

from purge_kernel.domain.clock import Clock, SystemClock
from purge_kernel.exceptions import AllOrNoneViolation, SourceError
from purge_kernel.logging_config import LogContext, get_logger

from purge_batch.domain.config import JobConfiguration
from purge_batch.domain.state import DEFAULT_ERROR_LOG_CAP, JobState
from purge_batch.domain.types import (
    ALL_OR_NONE_ROLLBACK,
    UNHANDLED_EXCEPTION,
    AllOrNoneScope,
    ChunkResult,
    JobStatus,
    RecordOutcome,
    RunnerPhase,
)
from purge_batch.mutation.base import DryRunExecutor, MutationExecutor
from purge_batch.services.reporter import JobReport, Reporter
from purge_batch.services.status import JobStatusStore
from purge_batch.sources.base import ChunkCursor, ChunkSource

logger = get_logger("batch.runner")


@dataclass(frozen=True)
class JobOutcome:
    """Terminal result of one job run.

    ``state`` is sealed: it is the job's permanent in-memory record.
    """

    job_id: UUID
    status: JobStatus
    state: JobState
    report: JobReport | None = None
    abort_reason: str | None = None
    resume_token: Any = None
    phases: tuple[RunnerPhase, ...] = ()

    @property
    def irreversible(self) -> bool:
        return self.state.irreversible


class _Abort(Exception):
    """Internal: leave the chunk loop with ABORTED status."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class BatchJobRunner:
    """Runs one deletion job at a time over a ChunkSource.

    Args:
        source: Produces identifier chunks for the selection.
        executor: Mutates one chunk.  Dry runs use ``dry_run_executor``.
        status_store: Optional job-status persistence, updated per chunk.
        reporter: Summary formatter/dispatcher (defaults to log-only).
        clock: Time source for start/finish timestamps.
        error_log_cap: Maximum error lines kept in JobState.
        checkpoint: Called at chunk boundaries, e.g. ``session.commit``.
    """

    def __init__(
        self,
        source: ChunkSource,
        executor: MutationExecutor,
        status_store: JobStatusStore | None = None,
        reporter: Reporter | None = None,
        clock: Clock | None = None,
        error_log_cap: int = DEFAULT_ERROR_LOG_CAP,
        dry_run_executor: MutationExecutor | None = None,
        checkpoint: Callable[[], None] | None = None,
    ):
        self._source = source
        self._executor = executor
        self._status_store = status_store
        self._reporter = reporter or Reporter()
        self._clock = clock or SystemClock()
        self._error_log_cap = error_log_cap
        self._dry_run_executor = dry_run_executor or DryRunExecutor()
        self._checkpoint = checkpoint

    def run(
        self,
        config: JobConfiguration,
        job_id: UUID | None = None,
        actor_id: UUID | None = None,
        cancel_event: threading.Event | None = None,
        resume_after: Any = None,
    ) -> JobOutcome:
        """Run ``config`` to a terminal state and return the outcome.

        Only status-store (database) errors propagate; every job-level
        failure is reported through ``JobOutcome.status``.
        """
        job_id = job_id or uuid4()
        actor_id = actor_id or uuid4()
        phases: list[RunnerPhase] = []

        with LogContext.bind(job_id=job_id, actor_id=actor_id):
            # INIT
            self._transition(phases, RunnerPhase.INIT)
            state = JobState(
                started_at=self._clock.now(),
                job_id=str(job_id),
                error_log_cap=self._error_log_cap,
            )
            if self._status_store is not None:
                self._status_store.create(config, actor_id, job_id=job_id)
            self._commit_checkpoint()

            status = JobStatus.COMPLETE
            abort_reason: str | None = None
            cursor: ChunkCursor | None = None

            try:
                total_items = self._source.count(config.query)
                cursor = self._source.open(
                    config.query, config.chunk_size, resume_after=resume_after,
                )
                if self._status_store is not None:
                    self._status_store.mark_running(job_id, state, total_items)
                self._commit_checkpoint()
                logger.info(
                    "job_started",
                    extra={
                        "source": config.query.source,
                        "operation": config.operation.value,
                        "chunk_size": config.chunk_size,
                        "all_or_none": config.all_or_none,
                        "total_items": total_items,
                    },
                )

                # RUNNING
                self._transition(phases, RunnerPhase.RUNNING)
                status = self._process_chunks(
                    cursor, config, state, job_id, cancel_event,
                )
            except SourceError as exc:
                logger.exception("job_source_failed")
                status, abort_reason = JobStatus.ABORTED, str(exc)
            except _Abort as exc:
                status, abort_reason = JobStatus.ABORTED, exc.reason

            if status == JobStatus.ABORTED:
                self._transition(phases, RunnerPhase.ABORTED)
            else:
                self._transition(phases, RunnerPhase.FINALIZING)

            report = self._finalize(state, job_id, status, config, abort_reason)
            self._transition(phases, RunnerPhase.DONE)

            return JobOutcome(
                job_id=job_id,
                status=status,
                state=state,
                report=report,
                abort_reason=abort_reason,
                resume_token=cursor.position if cursor is not None else resume_after,
                phases=tuple(phases),
            )

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _process_chunks(
        self,
        cursor: ChunkCursor,
        config: JobConfiguration,
        state: JobState,
        job_id: UUID,
        cancel_event: threading.Event | None,
    ) -> JobStatus:
        executor = self._dry_run_executor if config.dry_run else self._executor

        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(
                    "job_cancelled",
                    extra={"chunks_processed": state.chunks_processed},
                )
                return JobStatus.CANCELLED

            chunk = next(cursor, None)
            if chunk is None:
                return JobStatus.COMPLETE

            chunk_index = state.chunks_processed + 1
            with LogContext.bind(chunk_index=chunk_index):
                result, fatal = self._execute_chunk(executor, chunk, config)
                state.fold(result)
                if self._status_store is not None:
                    self._status_store.record_progress(job_id, state)
                self._commit_checkpoint()

                logger.info(
                    "chunk_processed",
                    extra={
                        "records": len(chunk),
                        "succeeded": result.succeeded,
                        "failed": result.failed,
                        "rolled_back": result.rolled_back,
                        "total_processed": state.total_processed,
                    },
                )

                if fatal is not None:
                    raise _Abort(fatal)

                if config.all_or_none and result.failed:
                    self._check_all_or_none(chunk_index, result, config)

    def _execute_chunk(
        self,
        executor: MutationExecutor,
        chunk: Sequence[str],
        config: JobConfiguration,
    ) -> tuple[ChunkResult, str | None]:
        """Run the executor; return (result, fatal reason or None).

        SourceError propagates to abort the job without folding the chunk.
        """
        try:
            result = executor.execute(chunk, config)
        except SourceError:
            raise
        except Exception as exc:
            logger.exception("chunk_execution_failed")
            return self._failed_chunk(chunk, config, str(exc)), (
                f"chunk execution failed: {exc}"
            )

        if not result.covers(tuple(chunk)):
            logger.error(
                "chunk_result_mismatch",
                extra={"submitted": len(chunk), "returned": len(result.entries)},
            )
            reason = "executor returned outcomes that do not match the chunk"
            return self._failed_chunk(chunk, config, reason), reason

        return result, None

    def _check_all_or_none(
        self,
        chunk_index: int,
        result: ChunkResult,
        config: JobConfiguration,
    ) -> None:
        first = result.failures[0]
        culprit = next(
            (e for e in result.failures if e.error_code != ALL_OR_NONE_ROLLBACK),
            first,
        )
        violation = AllOrNoneViolation(
            chunk_index=chunk_index,
            failed_count=result.failed,
            first_identifier=culprit.identifier,
            first_error_code=culprit.error_code,
        )
        if config.all_or_none_scope == AllOrNoneScope.CHUNK:
            logger.warning("chunk_all_or_none_rolled_back", extra={"reason": str(violation)})
            return
        logger.error(
            "job_all_or_none_violation",
            extra={"chunk_index": chunk_index, "failed": result.failed},
        )
        raise _Abort(str(violation))

    @staticmethod
    def _failed_chunk(
        chunk: Sequence[str], config: JobConfiguration, message: str,
    ) -> ChunkResult:
        return ChunkResult(
            entries=tuple(
                RecordOutcome.failure(identifier, UNHANDLED_EXCEPTION, message=message)
                for identifier in chunk
            ),
            operation=config.operation,
        )

    def _finalize(
        self,
        state: JobState,
        job_id: UUID,
        status: JobStatus,
        config: JobConfiguration,
        abort_reason: str | None,
    ) -> JobReport | None:
        state.seal(self._clock.now())
        if self._status_store is not None:
            self._status_store.finish(job_id, status, state, error_summary=abort_reason)
        self._commit_checkpoint()

        logger.info(
            "job_finished",
            extra={
                "status": status.value,
                "total_processed": state.total_processed,
                "succeeded": state.succeeded,
                "failed": state.failed,
                "duration_ms": int(state.duration.total_seconds() * 1000),
            },
        )

        try:
            return self._reporter.report(state, str(job_id), status, config, abort_reason)
        except Exception:
            logger.exception("job_report_failed")
            return None

    def _commit_checkpoint(self) -> None:
        if self._checkpoint is not None:
            self._checkpoint()

    @staticmethod
    def _transition(phases: list[RunnerPhase], phase: RunnerPhase) -> None:
        if phases:
            logger.debug(
                "runner_phase",
                extra={"from_phase": phases[-1].value, "to_phase": phase.value},
            )
        phases.append(phase)
