"""
purge_batch.domain.types -- Pure frozen dataclasses and enums for deletion jobs.

ZERO I/O.

Invariants enforced:
    - ChunkResult has exactly one RecordOutcome per submitted identifier.
    - All DTOs are frozen dataclasses with tuples for collections.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# =============================================================================
# Enums
# =============================================================================


class JobStatus(str, Enum):
    """Job-level status as written to the job-status record."""

    PENDING = "pending"  # Record created, runner not started
    RUNNING = "running"  # Chunks in progress
    COMPLETE = "complete"  # Every chunk processed
    ABORTED = "aborted"  # Source error or all-or-none violation
    CANCELLED = "cancelled"  # Host cancelled between chunks

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.ABORTED, JobStatus.CANCELLED)


class RunnerPhase(str, Enum):
    """Runner state machine phases."""

    INIT = "init"
    RUNNING = "running"
    FINALIZING = "finalizing"
    ABORTED = "aborted"
    DONE = "done"


class MutationOperation(str, Enum):
    """What the executor does to each record."""

    SOFT_DELETE = "soft_delete"  # Recoverable removal
    HARD_DELETE = "hard_delete"  # Bypasses recoverable staging
    DRY_RUN = "dry_run"  # Simulated, store untouched


class AllOrNoneScope(str, Enum):
    """How far an all-or-none failure reaches."""

    JOB = "job"  # Violating chunk rolls back and the job stops
    CHUNK = "chunk"  # Violating chunk rolls back, later chunks still run


# Error codes produced by executors
ENTITY_IS_DELETED = "ENTITY_IS_DELETED"
DELETE_FAILED = "DELETE_FAILED"
ALL_OR_NONE_ROLLBACK = "ALL_OR_NONE_ROLLBACK"
UNHANDLED_EXCEPTION = "UNHANDLED_EXCEPTION"


# =============================================================================
# Chunk outcome DTOs
# =============================================================================


@dataclass(frozen=True)
class RecordOutcome:
    """Outcome for one identifier within a chunk."""

    identifier: str
    success: bool
    error_code: str | None = None
    failed_fields: tuple[str, ...] = ()
    message: str | None = None

    @classmethod
    def ok(cls, identifier: str) -> RecordOutcome:
        return cls(identifier=identifier, success=True)

    @classmethod
    def failure(
        cls,
        identifier: str,
        error_code: str,
        failed_fields: tuple[str, ...] = (),
        message: str | None = None,
    ) -> RecordOutcome:
        return cls(
            identifier=identifier,
            success=False,
            error_code=error_code,
            failed_fields=tuple(failed_fields),
            message=message,
        )


@dataclass(frozen=True)
class ChunkResult:
    """Per-chunk outcome returned by a MutationExecutor.

    ``irreversible`` is set when a hard delete actually removed at least one
    record, so the runner and reporter can flag the job summary.  ``rolled_back`` is set when an all-or-none chunk
    was undone as a unit.
    """

    entries: tuple[RecordOutcome, ...]
    operation: MutationOperation
    irreversible: bool = False
    rolled_back: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for e in self.entries if e.success)

    @property
    def failed(self) -> int:
        return len(self.entries) - self.succeeded

    @property
    def failures(self) -> tuple[RecordOutcome, ...]:
        return tuple(e for e in self.entries if not e.success)

    def covers(self, chunk: tuple[str, ...]) -> bool:
        """True if there is exactly one entry per identifier, in order."""
        return tuple(e.identifier for e in self.entries) == tuple(chunk)


@dataclass(frozen=True)
class ErrorLogEntry:
    """One line of the capped error log."""

    identifier: str
    error_code: str
    failed_fields: tuple[str, ...] = ()
    chunk_index: int | None = None

    def describe(self) -> str:
        fields = ", ".join(self.failed_fields)
        return f"{self.identifier}: {self.error_code} (fields: {fields})"


@dataclass(frozen=True)
class JobStatusView:
    """Read-only status projection, queryable by job id at any time."""

    job_id: str
    status: JobStatus
    number_of_errors: int
    items_processed: int
    total_items: int | None
    error_summary: str | None = None
