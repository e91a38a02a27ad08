"""
purge_batch.sources -- ChunkSource protocol and implementations.
"""

from purge_batch.sources.base import ChunkCursor, ChunkSource
from purge_batch.sources.sql import SqlChunkSource
from purge_batch.sources.static import StaticChunkSource

__all__ = [
    "ChunkCursor",
    "ChunkSource",
    "SqlChunkSource",
    "StaticChunkSource",
]
