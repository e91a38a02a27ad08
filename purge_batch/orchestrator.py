"""
BatchOrchestrator -- DI container and job control surface.

Contract:
    Wires ChunkSource, MutationExecutor, JobStatusStore and Reporter around
    one session and clock, and exposes the fluent job surface::

        orchestrator = BatchOrchestrator.from_session(session, settings)
        job_id = (
            orchestrator.job("SELECT Id FROM Lead WHERE Status = 'Dead'")
            .set_all_or_none(False)
            .set_hard_delete(False)
            .set_send_report(True)
            .launch(chunk_size=500)
        )
        orchestrator.get_status(job_id)

    ``launch()`` runs the job synchronously to a terminal state.  Job-level
    failures are visible through ``get_status()`` / ``get_outcome()``, never
    as exceptions; only ConfigurationError escapes, and only from the
    ``job()`` / setter calls before launch.

Non-goals:
    - Does NOT schedule or trigger jobs.
    - Does NOT open or close sessions.  It commits only when built with
      ``commit_per_chunk=True``; otherwise the caller controls commits.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Sequence
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from purge_kernel.domain.clock import Clock, SystemClock
from purge_kernel.exceptions import JobNotFoundError
from purge_kernel.logging_config import get_logger

from purge_batch.config import BatchSettings
from purge_batch.domain.config import JobConfiguration, JobConfigurationBuilder
from purge_batch.domain.types import AllOrNoneScope, ErrorLogEntry, JobStatusView
from purge_batch.mutation.base import MutationExecutor, RecordGuard
from purge_batch.mutation.sql import SqlMutationExecutor
from purge_batch.services.reporter import (
    LogNotificationChannel,
    NotificationChannel,
    Reporter,
)
from purge_batch.services.runner import BatchJobRunner, JobOutcome
from purge_batch.services.status import JobStatusStore
from purge_batch.sources.base import ChunkSource
from purge_batch.sources.sql import SqlChunkSource

logger = get_logger("batch.orchestrator")


class DeletionJob:
    """Fluent job builder bound to an orchestrator.

    The descriptor is validated here, in the constructor.  Setters return
    ``self``; ``launch()`` freezes the configuration and runs it.
    """

    def __init__(self, orchestrator: BatchOrchestrator, descriptor: object):
        settings = orchestrator.settings
        self._orchestrator = orchestrator
        self._builder = (
            JobConfigurationBuilder(descriptor, identifier_field=settings.identifier_field)
            .set_chunk_size(settings.default_chunk_size)
            .set_all_or_none_scope(settings.all_or_none_scope)
        )

    def set_all_or_none(self, value: bool) -> DeletionJob:
        self._builder.set_all_or_none(value)
        return self

    def set_hard_delete(self, value: bool) -> DeletionJob:
        self._builder.set_hard_delete(value)
        return self

    def set_dry_run(self, value: bool) -> DeletionJob:
        self._builder.set_dry_run(value)
        return self

    def set_send_report(self, value: bool) -> DeletionJob:
        self._builder.set_send_report(value)
        return self

    def set_notification_target(self, address: str | None) -> DeletionJob:
        self._builder.set_notification_target(address)
        return self

    def set_all_or_none_scope(self, scope: AllOrNoneScope | str) -> DeletionJob:
        self._builder.set_all_or_none_scope(scope)
        return self

    def configuration(self, chunk_size: int | None = None) -> JobConfiguration:
        """Freeze the current options without running anything."""
        return self._builder.build(
            chunk_size=chunk_size,
            default_notification_target=self._orchestrator.principal_address,
        )

    def launch(
        self,
        chunk_size: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> UUID:
        """Run the job to a terminal state and return its id.

        Raises:
            ConfigurationError: If ``chunk_size`` is invalid.
        """
        config = self.configuration(chunk_size)
        return self._orchestrator.run(config, cancel_event=cancel_event).job_id


class BatchOrchestrator:
    """DI container for deletion jobs.

    Contract:
        - ``from_session()`` factory creates a fully wired orchestrator.
        - ``job()`` starts a fluent DeletionJob.
        - ``run()`` executes a frozen JobConfiguration.
        - ``get_status()`` / ``get_outcome()`` / ``get_errors()`` for queries.
    """

    def __init__(
        self,
        session: Session,
        source: ChunkSource,
        executor: MutationExecutor,
        settings: BatchSettings | None = None,
        clock: Clock | None = None,
        reporter: Reporter | None = None,
        actor_id: UUID | None = None,
        principal_address: str | None = None,
        checkpoint: Callable[[], None] | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or BatchSettings()
        self._clock = clock or SystemClock()
        self._source = source
        self._executor = executor
        self._status_store = JobStatusStore(session, clock=self._clock)
        self._reporter = reporter or Reporter(
            LogNotificationChannel(sender=self._settings.report_sender),
            environment=self._settings.environment,
        )
        self._actor_id = actor_id or uuid4()
        self._principal_address = principal_address
        self._checkpoint = checkpoint
        self._outcomes: dict[UUID, JobOutcome] = {}

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        settings: BatchSettings | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        principal_address: str | None = None,
        channel: NotificationChannel | None = None,
        guards: Sequence[RecordGuard] = (),
        commit_per_chunk: bool = False,
    ) -> BatchOrchestrator:
        """Create an orchestrator reading and deleting through ``session``.

        Args:
            session: SQLAlchemy session for the record store and status rows.
            settings: Deployment defaults (chunk size, error cap, environment).
            clock: Optional clock for deterministic testing.
            actor_id: Invoking principal, recorded on status rows.
            principal_address: Default report recipient.
            channel: Notification channel; defaults to the log channel.
            guards: Per-record vetoes applied before each mutation.
            commit_per_chunk: Commit ``session`` once the status row exists and
                after every chunk, so the status record (and the work done so
                far) is visible to other sessions while the job runs.
        """
        effective_settings = settings or BatchSettings()
        effective_clock = clock or SystemClock()
        reporter = Reporter(
            channel or LogNotificationChannel(sender=effective_settings.report_sender),
            environment=effective_settings.environment,
        )
        return cls(
            session=session,
            source=SqlChunkSource(session),
            executor=SqlMutationExecutor(session, clock=effective_clock, guards=guards),
            settings=effective_settings,
            clock=effective_clock,
            reporter=reporter,
            actor_id=actor_id,
            principal_address=principal_address,
            checkpoint=session.commit if commit_per_chunk else None,
        )

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------

    def job(self, descriptor: object) -> DeletionJob:
        """Start configuring a job.

        Raises:
            ConfigurationError: If the descriptor is invalid.
        """
        return DeletionJob(self, descriptor)

    def create_runner(self) -> BatchJobRunner:
        return BatchJobRunner(
            source=self._source,
            executor=self._executor,
            status_store=self._status_store,
            reporter=self._reporter,
            clock=self._clock,
            error_log_cap=self._settings.error_log_cap,
            checkpoint=self._checkpoint,
        )

    def run(
        self,
        config: JobConfiguration,
        cancel_event: threading.Event | None = None,
        resume_after: Any = None,
    ) -> JobOutcome:
        outcome = self.create_runner().run(
            config,
            actor_id=self._actor_id,
            cancel_event=cancel_event,
            resume_after=resume_after,
        )
        self._outcomes[outcome.job_id] = outcome
        logger.info(
            "job_launched",
            extra={"job_id": str(outcome.job_id), "status": outcome.status.value},
        )
        return outcome

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_status(self, job_id: UUID) -> JobStatusView:
        """Raises JobNotFoundError for unknown ids."""
        return self._status_store.get_status(job_id)

    def get_errors(self, job_id: UUID) -> tuple[ErrorLogEntry, ...]:
        return self._status_store.get_errors(job_id)

    def get_outcome(self, job_id: UUID) -> JobOutcome:
        """In-memory outcome of a job run by this orchestrator.

        Raises:
            JobNotFoundError: If this orchestrator did not run ``job_id``.
        """
        try:
            return self._outcomes[job_id]
        except KeyError:
            raise JobNotFoundError(str(job_id)) from None

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def settings(self) -> BatchSettings:
        return self._settings

    @property
    def actor_id(self) -> UUID:
        return self._actor_id

    @property
    def principal_address(self) -> str | None:
        return self._principal_address
