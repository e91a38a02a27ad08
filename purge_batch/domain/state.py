"""
purge_batch.domain.state -- Aggregate statistics kept across chunks.

One ``JobState`` lives for the whole job.  The runner is its only writer and
folds exactly one ChunkResult into it at a time; after finalize it is sealed
and handed read-only to the reporter.

Invariants enforced:
    - total_processed == succeeded + failed after every fold.
    - len(error_log) <= error_log_cap; failures past the cap are counted
      but not recorded.
    - Counters only increase; nothing is reset mid-job.

ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from purge_kernel.exceptions import JobStateInvariantError, JobStateSealedError

from purge_batch.domain.types import ChunkResult, ErrorLogEntry

DEFAULT_ERROR_LOG_CAP = 100


@dataclass
class JobState:
    """Mutable, job-scoped aggregate of chunk outcomes."""

    started_at: datetime
    job_id: str | None = None
    error_log_cap: int = DEFAULT_ERROR_LOG_CAP
    total_processed: int = 0
    succeeded: int = 0
    failed: int = 0
    chunks_processed: int = 0
    irreversible: bool = False
    error_log: list[ErrorLogEntry] = field(default_factory=list)
    finished_at: datetime | None = None
    _sealed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.error_log_cap < 0:
            raise ValueError(f"error_log_cap must be >= 0, got {self.error_log_cap}")

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def errors_truncated(self) -> int:
        """Failures that were counted but not recorded in the log."""
        return self.failed - len(self.error_log)

    @property
    def duration(self) -> timedelta | None:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def fold(self, result: ChunkResult) -> None:
        """Apply one chunk's outcomes.

        Raises:
            JobStateSealedError: If the job has already been finalized.
        """
        if self._sealed:
            raise JobStateSealedError(self.job_id)

        chunk_index = self.chunks_processed + 1
        for entry in result.entries:
            self.total_processed += 1
            if entry.success:
                self.succeeded += 1
                continue
            self.failed += 1
            if len(self.error_log) < self.error_log_cap:
                self.error_log.append(
                    ErrorLogEntry(
                        identifier=entry.identifier,
                        error_code=entry.error_code or "UNKNOWN",
                        failed_fields=entry.failed_fields,
                        chunk_index=chunk_index,
                    )
                )

        self.chunks_processed = chunk_index
        self.irreversible = self.irreversible or result.irreversible

    def seal(self, finished_at: datetime) -> None:
        """Record the finish time and make the state read-only."""
        if self._sealed:
            raise JobStateSealedError(self.job_id)
        self.finished_at = finished_at
        self._sealed = True

    def check_invariants(self) -> None:
        """Verify the aggregate invariants.

        Raises:
            JobStateInvariantError: Naming the first invariant that is broken.
        """
        if min(self.total_processed, self.succeeded, self.failed) < 0:
            raise JobStateInvariantError(self.job_id, "negative counter")
        if self.total_processed != self.succeeded + self.failed:
            raise JobStateInvariantError(
                self.job_id,
                f"total_processed {self.total_processed} != "
                f"succeeded {self.succeeded} + failed {self.failed}",
            )
        if len(self.error_log) > self.error_log_cap:
            raise JobStateInvariantError(
                self.job_id,
                f"error_log holds {len(self.error_log)} > cap {self.error_log_cap}",
            )
