"""
Fixtures for purge_batch tests: an in-memory record store that acts as both
ChunkSource and MutationExecutor, for scenarios too large for per-row SQL.
"""

from typing import Any, Sequence

import pytest

from purge_kernel.exceptions import SourceError

from purge_batch.domain.config import JobConfiguration
from purge_batch.domain.selection import SelectionQuery
from purge_batch.domain.types import ChunkResult, MutationOperation, RecordOutcome
from purge_batch.mutation.base import rolled_back_chunk
from purge_batch.sources.static import StaticChunkSource


class FakeRecordStore:
    """Records ``"1".."count"``; ids in ``failing`` are rejected on mutation.

    With all_or_none the chunk is undone as a unit, like a real transaction.
    """

    def __init__(
        self,
        count: int,
        failing: dict[str, tuple[str, tuple[str, ...]]] | None = None,
        fail_open: bool = False,
    ):
        self.ids = [str(i) for i in range(1, count + 1)]
        self.failing = failing or {}
        self.fail_open = fail_open
        self.deleted: set[str] = set()
        self.attempted: list[str] = []
        self.chunks_seen: list[tuple[str, ...]] = []

    # ChunkSource
    def open(self, query: SelectionQuery, chunk_size: int, resume_after: Any = None):
        if self.fail_open:
            raise SourceError(query.source, "no such column: Stale__c")
        alive = [i for i in self.ids if i not in self.deleted]
        return StaticChunkSource(alive).open(query, chunk_size, resume_after)

    def count(self, query: SelectionQuery) -> int | None:
        if self.fail_open:
            raise SourceError(query.source, "no such column: Stale__c")
        return len(self.ids) - len(self.deleted)

    # MutationExecutor
    def execute(self, chunk: Sequence[str], config: JobConfiguration) -> ChunkResult:
        self.chunks_seen.append(tuple(chunk))
        entries = []
        for identifier in chunk:
            self.attempted.append(identifier)
            if identifier in self.failing:
                code, fields = self.failing[identifier]
                entries.append(RecordOutcome.failure(identifier, code, fields))
            else:
                entries.append(RecordOutcome.ok(identifier))

        failures = [e for e in entries if not e.success]
        if config.all_or_none and failures:
            return rolled_back_chunk(chunk, failures[0], config.operation)

        self.deleted.update(e.identifier for e in entries if e.success)
        return ChunkResult(
            entries=tuple(entries),
            operation=config.operation,
            irreversible=(
                config.operation == MutationOperation.HARD_DELETE
                and any(e.success for e in entries)
            ),
        )


@pytest.fixture
def fake_store():
    """Factory: ``fake_store(count, failing={...})``."""

    def _make(count: int, failing=None, fail_open: bool = False) -> FakeRecordStore:
        return FakeRecordStore(count, failing=failing, fail_open=fail_open)

    return _make
