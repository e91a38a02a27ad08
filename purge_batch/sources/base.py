"""
ChunkSource protocol and the shared cursor base class.

Contract:
    ``ChunkSource.open()`` returns a ``ChunkCursor``: an iterator of
    identifier tuples, each at most ``chunk_size`` long, covering every
    matching record exactly once.  Only one chunk is held in memory at a
    time.  ``cursor.position`` is a resume token: passing it back as
    ``resume_after`` continues after the last identifier emitted.

Failure modes:
    - SourceError when the selection cannot be executed (unknown source,
      removed field, malformed filter).  Job-level and fatal.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterator, Protocol, runtime_checkable

from purge_batch.domain.selection import SelectionQuery


class ChunkCursor(ABC):
    """Iterator over identifier chunks with a resumable position."""

    def __init__(self, chunk_size: int, limit: int | None = None, resume_after: Any = None):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self._chunk_size = chunk_size
        self._remaining = limit
        self._position = resume_after
        self._chunks_emitted = 0
        self._exhausted = False

    @property
    def position(self) -> Any:
        """Resume token: the last identifier key emitted (or the start token)."""
        return self._position

    @property
    def chunks_emitted(self) -> int:
        return self._chunks_emitted

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def __iter__(self) -> Iterator[tuple[str, ...]]:
        return self

    def __next__(self) -> tuple[str, ...]:
        if self._exhausted:
            raise StopIteration

        size = self._chunk_size
        if self._remaining is not None:
            size = min(size, self._remaining)
        if size <= 0:
            self._exhausted = True
            raise StopIteration

        keys = self._fetch(size)
        if not keys:
            self._exhausted = True
            raise StopIteration

        self._position = keys[-1]
        self._chunks_emitted += 1
        if self._remaining is not None:
            self._remaining -= len(keys)
        if len(keys) < size:
            self._exhausted = True
        return tuple(str(k) for k in keys)

    @abstractmethod
    def _fetch(self, size: int) -> list[Any]:
        """Return up to ``size`` raw keys following ``self.position``."""
        ...


@runtime_checkable
class ChunkSource(Protocol):
    """Produces identifier chunks for a selection.

    Non-goals:
        - Does NOT mutate records -- that is the MutationExecutor's job.
        - Does NOT guarantee a stable order beyond covering each match once.
    """

    def open(
        self,
        query: SelectionQuery,
        chunk_size: int,
        resume_after: Any = None,
    ) -> ChunkCursor:
        """Start (or resume) iterating matching identifiers.

        Raises:
            SourceError: If the selection cannot be executed.
        """
        ...

    def count(self, query: SelectionQuery) -> int | None:
        """Number of matching records, or None if the source cannot tell."""
        ...
