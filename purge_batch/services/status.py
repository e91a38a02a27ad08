"""
JobStatusStore -- writes and reads the job-status record.

Contract:
    The runner calls ``create`` / ``mark_running`` / ``record_progress`` /
    ``finish`` as the job moves; anyone may call ``get_status`` at any time
    after launch.  Progress rows are a host-level observability side channel,
    separate from the in-memory JobState.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from purge_kernel.domain.clock import Clock, SystemClock
from purge_kernel.exceptions import JobNotFoundError
from purge_kernel.logging_config import get_logger

from purge_batch.domain.config import JobConfiguration
from purge_batch.domain.state import JobState
from purge_batch.domain.types import ErrorLogEntry, JobStatus, JobStatusView
from purge_batch.models.job import DeletionErrorModel, DeletionJobModel

logger = get_logger("batch.status")


class JobStatusStore:
    """Persistence for DeletionJobModel / DeletionErrorModel rows."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create(
        self,
        config: JobConfiguration,
        actor_id: UUID,
        job_id: UUID | None = None,
    ) -> UUID:
        """Insert a PENDING status row and return its id."""
        job_id = job_id or uuid4()
        model = DeletionJobModel(
            id=job_id,
            status=JobStatus.PENDING.value,
            query_text=config.query.text,
            source=config.query.source,
            operation=config.operation.value,
            all_or_none=config.all_or_none,
            dry_run=config.dry_run,
            chunk_size=config.chunk_size,
            notification_target=config.notification_target,
            created_by_id=actor_id,
        )
        model.created_at = self._clock.now()
        self._session.add(model)
        self._session.flush()
        return job_id

    def mark_running(self, job_id: UUID, state: JobState, total_items: int | None) -> None:
        model = self._get(job_id)
        model.status = JobStatus.RUNNING.value
        model.started_at = state.started_at
        model.total_items = total_items
        self._session.flush()

    def record_progress(self, job_id: UUID, state: JobState) -> None:
        """Copy the current counters onto the status row."""
        model = self._get(job_id)
        model.items_processed = state.total_processed
        model.succeeded_items = state.succeeded
        model.number_of_errors = state.failed
        model.chunks_processed = state.chunks_processed
        self._session.flush()

    def finish(
        self,
        job_id: UUID,
        status: JobStatus,
        state: JobState,
        error_summary: str | None = None,
    ) -> None:
        """Write the terminal status, final counters and the capped error log."""
        model = self._get(job_id)
        model.status = status.value
        model.completed_at = state.finished_at or self._clock.now()
        model.items_processed = state.total_processed
        model.succeeded_items = state.succeeded
        model.number_of_errors = state.failed
        model.chunks_processed = state.chunks_processed
        if status == JobStatus.COMPLETE and model.total_items is None:
            model.total_items = state.total_processed
        model.error_summary = error_summary or (
            f"{state.failed} record(s) failed" if state.failed else None
        )
        self.record_errors(job_id, state.error_log)

        logger.info(
            "job_status_finished",
            extra={
                "job_id": str(job_id),
                "status": status.value,
                "items_processed": state.total_processed,
                "number_of_errors": state.failed,
            },
        )

    def record_errors(self, job_id: UUID, entries: Sequence[ErrorLogEntry]) -> None:
        """Append error log lines after those already stored for ``job_id``."""
        model = self._get(job_id)
        start = len(model.errors)
        now = self._clock.now()
        for offset, entry in enumerate(entries):
            row = DeletionErrorModel.from_dto(
                entry,
                job_id=job_id,
                position=start + offset,
                created_by_id=model.created_by_id,
            )
            row.created_at = now
            row.job = model
            self._session.add(row)
        self._session.flush()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_status(self, job_id: UUID) -> JobStatusView:
        """Status projection for ``job_id``.

        Raises:
            JobNotFoundError: If job_id does not exist.
        """
        return self._get(job_id).to_status_view()

    def get_job(self, job_id: UUID) -> DeletionJobModel:
        """The full status row for ``job_id``.

        Raises:
            JobNotFoundError: If job_id does not exist.
        """
        return self._get(job_id)

    def get_errors(self, job_id: UUID) -> tuple[ErrorLogEntry, ...]:
        """Persisted error log lines for ``job_id``, in log order."""
        self._get(job_id)
        rows = self._session.execute(
            select(DeletionErrorModel)
            .where(DeletionErrorModel.job_id == job_id)
            .order_by(DeletionErrorModel.position)
        ).scalars().all()
        return tuple(r.to_dto() for r in rows)

    def _get(self, job_id: UUID) -> DeletionJobModel:
        model = self._session.get(DeletionJobModel, job_id)
        if model is None:
            raise JobNotFoundError(str(job_id))
        return model
