"""
purge_batch.mutation -- MutationExecutor protocol and implementations.
"""

from purge_batch.mutation.base import (
    DryRunExecutor,
    MutationExecutor,
    RecordGuard,
    rolled_back_chunk,
)
from purge_batch.mutation.sql import SqlMutationExecutor

__all__ = [
    "DryRunExecutor",
    "MutationExecutor",
    "RecordGuard",
    "SqlMutationExecutor",
    "rolled_back_chunk",
]
