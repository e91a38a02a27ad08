"""
purge_batch.domain -- Pure types, selection parsing, configuration and state.

ZERO I/O.
"""

from purge_batch.domain.config import (
    DEFAULT_CHUNK_SIZE,
    JobConfiguration,
    JobConfigurationBuilder,
)
from purge_batch.domain.selection import SelectionQuery, parse_selection
from purge_batch.domain.state import DEFAULT_ERROR_LOG_CAP, JobState
from purge_batch.domain.types import (
    AllOrNoneScope,
    ChunkResult,
    ErrorLogEntry,
    JobStatus,
    JobStatusView,
    MutationOperation,
    RecordOutcome,
    RunnerPhase,
)

__all__ = [
    "AllOrNoneScope",
    "ChunkResult",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_ERROR_LOG_CAP",
    "ErrorLogEntry",
    "JobConfiguration",
    "JobConfigurationBuilder",
    "JobState",
    "JobStatus",
    "JobStatusView",
    "MutationOperation",
    "RecordOutcome",
    "RunnerPhase",
    "SelectionQuery",
    "parse_selection",
]
