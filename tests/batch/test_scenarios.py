"""
End-to-end deletion scenarios at realistic volume.
"""

from purge_batch.domain.config import JobConfigurationBuilder
from purge_batch.domain.types import DELETE_FAILED, JobStatus
from purge_batch.mutation.sql import SqlMutationExecutor
from purge_batch.services.runner import BatchJobRunner
from purge_batch.sources.sql import SqlChunkSource


class TestLargeJobWithScatteredFailures:
    def test_fifteen_thousand_records(self, fake_store, clock):
        failing = {
            str(i): ("FIELD_CUSTOM_VALIDATION_EXCEPTION", ("Status",))
            for i in range(1000, 14000, 1000)
        }
        assert len(failing) == 13
        store = fake_store(15000, failing=failing)
        config = (
            JobConfigurationBuilder("SELECT Id FROM contact WHERE status = 'stale'")
            .set_all_or_none(False)
            .build(chunk_size=200)
        )

        outcome = BatchJobRunner(source=store, executor=store, clock=clock).run(config)

        assert outcome.status == JobStatus.COMPLETE
        state = outcome.state
        assert state.total_processed == 15000
        assert state.succeeded == 14987
        assert state.failed == 13
        assert state.chunks_processed == 75
        assert len(state.error_log) == 13
        assert max(len(c) for c in store.chunks_seen) == 200
        assert "Errors (13 shown of 13):" in outcome.report.body
        assert "1000: FIELD_CUSTOM_VALIDATION_EXCEPTION (fields: Status)" in outcome.report.body


class TestAllOrNoneStopsEarly:
    def test_failure_in_third_chunk(self, fake_store, clock):
        store = fake_store(500, failing={"250": (DELETE_FAILED, ())})
        config = (
            JobConfigurationBuilder("SELECT Id FROM contact")
            .set_all_or_none(True)
            .build(chunk_size=100)
        )

        outcome = BatchJobRunner(source=store, executor=store, clock=clock).run(config)

        assert outcome.status == JobStatus.ABORTED
        assert len(store.attempted) == 300
        assert len(store.deleted) == 200
        assert outcome.state.total_processed == 300
        assert outcome.state.succeeded == 200
        assert outcome.state.failed == 100
        assert "chunk 3" in outcome.abort_reason


class TestDryRunIsRepeatable:
    def test_two_dry_runs_agree_and_change_nothing(
        self, db_session, seed_contacts, clock, contact_table,
    ):
        seed_contacts(120, locked=[7, 77], stale=range(1, 121, 3))
        runner = BatchJobRunner(
            source=SqlChunkSource(db_session),
            executor=SqlMutationExecutor(db_session, clock),
            clock=clock,
        )
        config = (
            JobConfigurationBuilder("SELECT Id FROM contact WHERE status = 'stale'")
            .set_dry_run(True)
            .set_hard_delete(True)
            .build(chunk_size=15)
        )

        first = runner.run(config)
        second = runner.run(config)

        assert first.status == second.status == JobStatus.COMPLETE
        counters = lambda s: (s.total_processed, s.succeeded, s.failed, s.chunks_processed)
        assert counters(first.state) == counters(second.state) == (40, 40, 0, 3)
        assert first.state.error_log == second.state.error_log == []
        assert len(db_session.execute(contact_table.select()).all()) == 120
        assert "Mode: DRY RUN" in first.report.body


class TestSoftDeleteEndToEnd:
    def test_mixed_batch_against_sql(self, db_session, seed_contacts, clock, contact_table):
        seed_contacts(60, locked=[5, 45])
        runner = BatchJobRunner(
            source=SqlChunkSource(db_session),
            executor=SqlMutationExecutor(db_session, clock),
            clock=clock,
        )
        config = JobConfigurationBuilder("SELECT Id, name FROM contact").build(chunk_size=25)

        outcome = runner.run(config)

        assert outcome.status == JobStatus.COMPLETE
        assert (outcome.state.succeeded, outcome.state.failed) == (58, 2)
        assert [e.identifier for e in outcome.state.error_log] == ["5", "45"]
        rows = db_session.execute(contact_table.select()).all()
        assert len(rows) == 60
        assert sorted(r.id for r in rows if not r.is_deleted) == [5, 45]
        assert not outcome.irreversible
