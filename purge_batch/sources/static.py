"""
Chunk source over an in-memory iterable of identifiers.

Used for id lists supplied by the caller and in tests.  Generators are
consumed lazily, one chunk at a time; the selection's LIMIT is honoured.
"""

from __future__ import annotations

from itertools import islice
from typing import Any, Iterable, Iterator

from purge_batch.domain.selection import SelectionQuery
from purge_batch.sources.base import ChunkCursor


class IterableCursor(ChunkCursor):
    """Cursor that slices successive chunks off an iterator."""

    def __init__(
        self,
        identifiers: Iterator[Any],
        chunk_size: int,
        limit: int | None = None,
        resume_after: Any = None,
    ):
        super().__init__(chunk_size, limit=limit, resume_after=resume_after)
        self._it = identifiers
        if resume_after is not None:
            self._skip_through(str(resume_after))

    def _skip_through(self, token: str) -> None:
        for key in self._it:
            if str(key) == token:
                return
        self._exhausted = True

    def _fetch(self, size: int) -> list[Any]:
        return list(islice(self._it, size))


class StaticChunkSource:
    """ChunkSource backed by a fixed identifier iterable.

    The query's source/filter are ignored: the iterable already *is* the
    selection.  ``count()`` is only known for sized collections.
    """

    def __init__(self, identifiers: Iterable[Any]):
        self._identifiers = identifiers

    def open(
        self,
        query: SelectionQuery,
        chunk_size: int,
        resume_after: Any = None,
    ) -> IterableCursor:
        return IterableCursor(
            iter(self._identifiers),
            chunk_size,
            limit=query.limit,
            resume_after=resume_after,
        )

    def count(self, query: SelectionQuery) -> int | None:
        try:
            total = len(self._identifiers)  # type: ignore[arg-type]
        except TypeError:
            return None
        if query.limit is not None:
            return min(total, query.limit)
        return total
