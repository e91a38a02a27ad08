"""
Tests for purge_batch.services.reporter -- report text and delivery rules.
"""

from datetime import datetime, timedelta, timezone

from purge_batch.domain.config import JobConfigurationBuilder
from purge_batch.domain.state import JobState
from purge_batch.domain.types import (
    ChunkResult,
    JobStatus,
    MutationOperation,
    RecordOutcome,
)
from purge_batch.services.reporter import (
    LogNotificationChannel,
    NotificationChannel,
    Reporter,
    format_report,
)

STARTED = datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc)
JOB_ID = "5b0c3f64-9a0e-4c55-8d2e-0a1b2c3d4e5f"


def _config(send_report=False, target=None, dry_run=False, hard_delete=False):
    builder = (
        JobConfigurationBuilder("SELECT Id FROM contact WHERE status = 'stale'")
        .set_send_report(send_report)
        .set_dry_run(dry_run)
        .set_hard_delete(hard_delete)
    )
    if target is not None:
        builder.set_notification_target(target)
    return builder.build()


def _state(succeeded=8, failures=(), irreversible=False, elapsed=timedelta(seconds=3723.5)):
    state = JobState(started_at=STARTED, job_id=JOB_ID)
    entries = [RecordOutcome.ok(str(i)) for i in range(succeeded)]
    entries += [RecordOutcome.failure(i, code, fields) for i, code, fields in failures]
    state.fold(ChunkResult(
        entries=tuple(entries),
        operation=MutationOperation.HARD_DELETE if irreversible else MutationOperation.SOFT_DELETE,
        irreversible=irreversible,
    ))
    state.seal(STARTED + elapsed)
    return state


class RecordingChannel:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, to, subject, body):
        if self.fail:
            raise ConnectionError("smtp unreachable")
        self.sent.append((to, subject, body))


class TestFormatReport:
    def test_headline_and_counters(self):
        report = format_report(_state(), JOB_ID, JobStatus.COMPLETE, _config())

        assert report.subject == f"Deletion job {JOB_ID} COMPLETE"
        lines = report.body.splitlines()
        assert f"Job ID: {JOB_ID}" in lines
        assert "Status: COMPLETE" in lines
        assert "Selection: SELECT Id FROM contact WHERE status = 'stale'" in lines
        assert "Processed: 8" in lines
        assert "Succeeded: 8" in lines
        assert "Failed: 0" in lines
        assert "Duration: 01:02:03.500" in lines

    def test_error_lines_use_describe(self):
        state = _state(
            succeeded=2,
            failures=[("003A", "FIELD_CUSTOM_VALIDATION_EXCEPTION", ("Status", "Owner"))],
        )
        body = format_report(state, JOB_ID, JobStatus.COMPLETE, _config()).body

        assert "Errors (1 shown of 1):" in body
        assert "003A: FIELD_CUSTOM_VALIDATION_EXCEPTION (fields: Status, Owner)" in body

    def test_truncated_log_shows_shown_of_total(self):
        state = JobState(started_at=STARTED, error_log_cap=2)
        state.fold(ChunkResult(
            entries=tuple(RecordOutcome.failure(str(i), "DELETE_FAILED") for i in range(5)),
            operation=MutationOperation.SOFT_DELETE,
        ))
        state.seal(STARTED)
        body = format_report(state, JOB_ID, JobStatus.COMPLETE, _config()).body
        assert "Errors (2 shown of 5):" in body

    def test_dry_run_marked(self):
        body = format_report(_state(), JOB_ID, JobStatus.COMPLETE, _config(dry_run=True)).body
        assert "Mode: DRY RUN (no records were modified)" in body
        assert "WARNING" not in body

    def test_hard_delete_marked_irreversible(self):
        state = _state(irreversible=True)
        body = format_report(state, JOB_ID, JobStatus.COMPLETE, _config(hard_delete=True)).body
        assert "WARNING: hard delete, records are not recoverable" in body

    def test_abort_reason_included(self):
        body = format_report(
            _state(), JOB_ID, JobStatus.ABORTED, _config(), abort_reason="source failed",
        ).body
        assert "Abort reason: source failed" in body

    def test_deterministic(self):
        state = _state(failures=[("9", "DELETE_FAILED", ())])
        first = format_report(state, JOB_ID, JobStatus.COMPLETE, _config())
        second = format_report(state, JOB_ID, JobStatus.COMPLETE, _config())
        assert first == second


class TestReporterDelivery:
    def test_channels_satisfy_protocol(self):
        assert isinstance(LogNotificationChannel(), NotificationChannel)
        assert isinstance(RecordingChannel(), NotificationChannel)

    def test_summary_always_logged(self, captured_logs):
        Reporter(RecordingChannel()).report(_state(), JOB_ID, JobStatus.COMPLETE, _config())
        summary = [r for r in captured_logs() if r["message"] == "job_summary"]
        assert len(summary) == 1
        assert summary[0]["succeeded"] == 8

    def test_not_sent_unless_requested(self):
        channel = RecordingChannel()
        Reporter(channel, environment="production").report(
            _state(), JOB_ID, JobStatus.COMPLETE, _config(target="ops@example.com"),
        )
        assert channel.sent == []

    def test_sent_in_production(self):
        channel = RecordingChannel()
        config = _config(send_report=True, target="ops@example.com")
        report = Reporter(channel, environment="production").report(
            _state(), JOB_ID, JobStatus.COMPLETE, config,
        )
        assert channel.sent == [("ops@example.com", report.subject, report.body)]

    def test_suppressed_outside_production(self, captured_logs):
        channel = RecordingChannel()
        config = _config(send_report=True, target="ops@example.com")
        Reporter(channel, environment="staging").report(
            _state(), JOB_ID, JobStatus.COMPLETE, config,
        )
        assert channel.sent == []
        assert any(r["message"] == "report_delivery_suppressed" for r in captured_logs())

    def test_missing_target_warns(self, captured_logs):
        channel = RecordingChannel()
        Reporter(channel, environment="production").report(
            _state(), JOB_ID, JobStatus.COMPLETE, _config(send_report=True),
        )
        assert channel.sent == []
        warnings = [r for r in captured_logs() if r["message"] == "report_no_target"]
        assert warnings[0]["level"] == "WARNING"

    def test_channel_failure_is_swallowed(self, captured_logs):
        config = _config(send_report=True, target="ops@example.com")
        report = Reporter(RecordingChannel(fail=True), environment="production").report(
            _state(), JOB_ID, JobStatus.COMPLETE, config,
        )
        assert report.subject.endswith("COMPLETE")
        failed = [r for r in captured_logs() if r["message"] == "report_delivery_failed"]
        assert failed[0]["exc_type"] == "ReportDeliveryError"
        assert failed[0]["exc_target"] == "ops@example.com"

    def test_log_channel_records_sends(self):
        channel = LogNotificationChannel(sender="purge@example.com")
        config = _config(send_report=True, target="ops@example.com")
        Reporter(channel, environment="production").report(
            _state(), JOB_ID, JobStatus.COMPLETE, config,
        )
        assert channel.sent == [("ops@example.com", f"Deletion job {JOB_ID} COMPLETE")]
