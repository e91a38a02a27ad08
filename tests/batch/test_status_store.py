"""
Tests for purge_batch.services.status -- the queryable job-status record.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from purge_kernel.exceptions import JobNotFoundError

from purge_batch.domain.config import JobConfigurationBuilder
from purge_batch.domain.state import JobState
from purge_batch.domain.types import (
    ChunkResult,
    ErrorLogEntry,
    JobStatus,
    MutationOperation,
    RecordOutcome,
)
from purge_batch.services.status import JobStatusStore


@pytest.fixture
def store(db_session, clock):
    return JobStatusStore(db_session, clock)


@pytest.fixture
def config():
    return (
        JobConfigurationBuilder("SELECT Id FROM contact LIMIT 50")
        .set_hard_delete(True)
        .set_notification_target("ops@example.com")
        .build(chunk_size=25)
    )


def _folded_state(clock, ok=3, failed=2):
    state = JobState(started_at=clock.now())
    entries = [RecordOutcome.ok(f"ok-{i}") for i in range(ok)]
    entries += [
        RecordOutcome.failure(f"bad-{i}", "DELETE_FAILED", ("Owner",)) for i in range(failed)
    ]
    state.fold(ChunkResult(entries=tuple(entries), operation=MutationOperation.HARD_DELETE))
    return state


class TestCreate:
    def test_pending_row_with_configuration(self, store, config):
        actor = uuid4()
        job_id = store.create(config, actor)

        row = store.get_job(job_id)
        assert row.status == JobStatus.PENDING.value
        assert row.source == "contact"
        assert row.operation == MutationOperation.HARD_DELETE.value
        assert row.chunk_size == 25
        assert row.notification_target == "ops@example.com"
        assert row.created_by_id == actor

    def test_explicit_job_id_used(self, store, config):
        job_id = uuid4()
        assert store.create(config, uuid4(), job_id=job_id) == job_id

    def test_initial_view(self, store, config):
        job_id = store.create(config, uuid4())
        view = store.get_status(job_id)
        assert view.job_id == str(job_id)
        assert view.status == JobStatus.PENDING
        assert view.items_processed == 0
        assert view.number_of_errors == 0
        assert view.total_items is None


class TestProgress:
    def test_running_and_progress_visible(self, store, config, clock):
        job_id = store.create(config, uuid4())
        state = _folded_state(clock)

        store.mark_running(job_id, state, total_items=50)
        store.record_progress(job_id, state)

        view = store.get_status(job_id)
        assert view.status == JobStatus.RUNNING
        assert view.total_items == 50
        assert view.items_processed == 5
        assert view.number_of_errors == 2
        assert store.get_job(job_id).chunks_processed == 1


class TestFinish:
    def test_terminal_status_counters_and_errors(self, store, config, clock):
        job_id = store.create(config, uuid4())
        state = _folded_state(clock)
        store.mark_running(job_id, state, total_items=None)
        state.seal(clock.now() + timedelta(seconds=4))

        store.finish(job_id, JobStatus.COMPLETE, state)

        view = store.get_status(job_id)
        assert view.status == JobStatus.COMPLETE
        assert view.items_processed == 5
        assert view.number_of_errors == 2
        assert view.total_items == 5
        assert view.error_summary == "2 record(s) failed"
        assert store.get_job(job_id).completed_at is not None

        errors = store.get_errors(job_id)
        assert [e.identifier for e in errors] == ["bad-0", "bad-1"]
        assert errors[0].failed_fields == ("Owner",)
        assert errors[0].chunk_index == 1

    def test_abort_reason_kept(self, store, config, clock):
        job_id = store.create(config, uuid4())
        state = _folded_state(clock, failed=0)
        state.seal(clock.now())

        store.finish(job_id, JobStatus.ABORTED, state, error_summary="no such table")

        view = store.get_status(job_id)
        assert view.status == JobStatus.ABORTED
        assert view.error_summary == "no such table"
        assert view.total_items is None

    def test_clean_job_has_no_summary(self, store, config, clock):
        job_id = store.create(config, uuid4())
        state = _folded_state(clock, failed=0)
        state.seal(clock.now())
        store.finish(job_id, JobStatus.COMPLETE, state)
        assert store.get_status(job_id).error_summary is None
        assert store.get_errors(job_id) == ()


class TestUnknownJob:
    @pytest.mark.parametrize("method", ["get_status", "get_job", "get_errors"])
    def test_unknown_id_raises(self, store, method):
        missing = uuid4()
        with pytest.raises(JobNotFoundError) as exc_info:
            getattr(store, method)(missing)
        assert exc_info.value.job_id == str(missing)


class TestRecordErrors:
    def test_appends_in_order(self, store, config):
        job_id = store.create(config, uuid4())
        store.record_errors(job_id, [ErrorLogEntry("a", "DELETE_FAILED", chunk_index=1)])
        store.record_errors(job_id, [
            ErrorLogEntry("b", "ENTITY_IS_DELETED", chunk_index=2),
            ErrorLogEntry("c", "DELETE_FAILED", ("Owner", "Status"), chunk_index=2),
        ])

        errors = store.get_errors(job_id)
        assert [e.identifier for e in errors] == ["a", "b", "c"]
        assert errors[2].failed_fields == ("Owner", "Status")
        assert [r.position for r in store.get_job(job_id).errors] == [0, 1, 2]
