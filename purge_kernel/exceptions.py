"""
Typed Exception Hierarchy for bulk record jobs.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A deletion job has to tell apart "the job could not start", "the job had to
stop" and "one record could not be deleted".  Parsing message strings for
that is fragile, so every error has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, safe to persist in status rows)
  3. Structured DATA attributes (identifier, failed fields, job id, ...)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PurgeError:

    PurgeError (base)
    |
    +-- ConfigurationError        invalid descriptor or option value
    |
    +-- JobError
    |   +-- SourceError           selection failed at execution time
    |   +-- AllOrNoneViolation    record failure under all-or-none
    |   +-- JobNotFoundError      unknown job id in the status store
    |   +-- JobStateSealedError   fold attempted after finalize
    |   +-- JobStateInvariantError  counters disagree (programming error)
    |
    +-- RecordMutationError       one record could not be mutated
    |
    +-- ReportDeliveryError       notification dispatch failed

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                     | Propagation
-------------------------|----------------------------------------------------
CONFIGURATION_ERROR      | Raised synchronously at construction / setter time
SOURCE_ERROR             | Caught by the runner, job ends ABORTED
ALL_OR_NONE_VIOLATION    | Caught by the runner, job ends ABORTED
RECORD_MUTATION_ERROR    | Never propagates; folded into failed count/error log
REPORT_DELIVERY_ERROR    | Logged only; never changes the job status
JOB_NOT_FOUND            | Raised by status queries
JOB_STATE_SEALED         | Programming error; state is read-only after finalize
JOB_STATE_INVARIANT      | Programming error; raised by JobState.check_invariants
"""

from __future__ import annotations

from typing import Sequence


class PurgeError(Exception):
    """
    Base exception for all purge errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PURGE_ERROR"


# Configuration


class ConfigurationError(PurgeError):
    """Job configuration is invalid; the job is never created."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, option: str | None = None, value: object = None):
        self.option = option
        self.value = value
        super().__init__(message)


# Job-level failures


class JobError(PurgeError):
    """Base exception for job-level failures."""

    code: str = "JOB_ERROR"


class SourceError(JobError):
    """The selection could not be executed against the record store."""

    code: str = "SOURCE_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Selection on '{source}' failed: {reason}")


class AllOrNoneViolation(JobError):
    """A record failed while the job runs with all-or-none semantics."""

    code: str = "ALL_OR_NONE_VIOLATION"

    def __init__(
        self,
        chunk_index: int,
        failed_count: int,
        first_identifier: str | None = None,
        first_error_code: str | None = None,
    ):
        self.chunk_index = chunk_index
        self.failed_count = failed_count
        self.first_identifier = first_identifier
        self.first_error_code = first_error_code
        detail = ""
        if first_identifier is not None:
            detail = f" (first: {first_identifier} {first_error_code})"
        super().__init__(
            f"All-or-none violated in chunk {chunk_index}: "
            f"{failed_count} record(s) failed{detail}"
        )


class JobNotFoundError(JobError):
    """Job with the given id does not exist in the status store."""

    code: str = "JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Deletion job not found: {job_id}")


class JobStateSealedError(JobError):
    """Job state was modified after the job reached a terminal state."""

    code: str = "JOB_STATE_SEALED"

    def __init__(self, job_id: str | None = None):
        self.job_id = job_id
        super().__init__(f"Job state is sealed and read-only: {job_id}")


class JobStateInvariantError(JobError):
    """Job counters no longer agree with each other (a folding bug)."""

    code: str = "JOB_STATE_INVARIANT"

    def __init__(self, job_id: str | None, detail: str):
        self.job_id = job_id
        self.detail = detail
        super().__init__(f"Job state invariant broken for {job_id}: {detail}")


# Record-level failures


class RecordMutationError(PurgeError):
    """
    A single record could not be mutated (validation, lock, permission).

    Always recovered locally by the executor: counted as failed and
    recorded in the capped error log.
    """

    code: str = "RECORD_MUTATION_ERROR"

    def __init__(
        self,
        identifier: str,
        error_code: str,
        failed_fields: Sequence[str] = (),
        message: str | None = None,
    ):
        self.identifier = identifier
        self.error_code = error_code
        self.failed_fields = tuple(failed_fields)
        super().__init__(message or f"Record {identifier} rejected: {error_code}")


# Reporting


class ReportDeliveryError(PurgeError):
    """Notification dispatch failed. Logged, never escalated."""

    code: str = "REPORT_DELIVERY_ERROR"

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Report delivery to {target} failed: {reason}")
