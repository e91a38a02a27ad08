"""
MutationExecutor protocol, record guards and the dry-run executor.

Contract:
    ``execute(chunk, config)`` returns a ChunkResult with exactly one
    RecordOutcome per identifier in ``chunk``, in the same order.
    Record-level problems (validation, lock, permission, missing row) are
    reported as failed outcomes and never raised.

Non-goals:
    - Does NOT fold results into JobState -- the runner owns aggregation.
    - Does NOT decide whether the job continues after a failure.
"""

from __future__ import annotations

from typing import Callable, Protocol, Sequence, runtime_checkable

from purge_batch.domain.config import JobConfiguration
from purge_batch.domain.types import (
    ALL_OR_NONE_ROLLBACK,
    ChunkResult,
    MutationOperation,
    RecordOutcome,
)

# A guard vetoes a record by raising RecordMutationError.
RecordGuard = Callable[[str, JobConfiguration], None]


@runtime_checkable
class MutationExecutor(Protocol):
    """Applies the configured operation to one chunk."""

    def execute(self, chunk: Sequence[str], config: JobConfiguration) -> ChunkResult:
        ...


class DryRunExecutor:
    """Reports every identifier as succeeded without touching the store."""

    def execute(self, chunk: Sequence[str], config: JobConfiguration) -> ChunkResult:
        return ChunkResult(
            entries=tuple(RecordOutcome.ok(identifier) for identifier in chunk),
            operation=MutationOperation.DRY_RUN,
        )


def rolled_back_chunk(
    chunk: Sequence[str],
    culprit: RecordOutcome,
    operation: MutationOperation,
) -> ChunkResult:
    """Build the result of an all-or-none chunk that was undone as a unit.

    The failing record keeps its own error; every other record is marked
    failed with ALL_OR_NONE_ROLLBACK, naming the culprit as shared cause.
    Nothing survived the rollback, so the result is never irreversible.
    """
    cause = f"rolled back: {culprit.identifier} failed with {culprit.error_code}"
    entries = tuple(
        culprit
        if identifier == culprit.identifier
        else RecordOutcome.failure(identifier, ALL_OR_NONE_ROLLBACK, message=cause)
        for identifier in chunk
    )
    return ChunkResult(
        entries=entries,
        operation=operation,
        rolled_back=True,
    )
