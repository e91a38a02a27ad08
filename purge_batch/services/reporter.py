"""
Reporter -- job summary formatting and best-effort delivery.

Contract:
    ``format_report()`` is pure and deterministic: the same final state,
    job id, status and configuration always give the same text.
    ``Reporter.report()`` always logs a one-line summary, then dispatches the
    full report to the notification channel when the job asked for one and
    the environment is production.

Failure modes:
    - Channel failures are wrapped in ReportDeliveryError, logged, and
      swallowed.  Delivery never changes the job's terminal status.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol, runtime_checkable

from purge_kernel.exceptions import ReportDeliveryError
from purge_kernel.logging_config import get_logger

from purge_batch.domain.config import JobConfiguration
from purge_batch.domain.state import JobState
from purge_batch.domain.types import JobStatus

logger = get_logger("batch.reporter")

PRODUCTION = "production"


@dataclass(frozen=True)
class JobReport:
    """Rendered report: subject line and body."""

    subject: str
    body: str


def _format_duration(duration: timedelta | None) -> str:
    if duration is None:
        return "n/a"
    total_ms = int(duration.total_seconds() * 1000)
    seconds, ms = divmod(total_ms, 1000)
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{ms:03d}"


def format_report(
    state: JobState,
    job_id: str,
    status: JobStatus,
    config: JobConfiguration,
    abort_reason: str | None = None,
) -> JobReport:
    """Render the summary for a finished job."""
    subject = f"Deletion job {job_id} {status.value.upper()}"
    lines = [
        f"Job ID: {job_id}",
        f"Status: {status.value.upper()}",
        f"Selection: {config.query.text}",
        f"Started: {state.started_at.isoformat()}",
        f"Duration: {_format_duration(state.duration)}",
        f"Processed: {state.total_processed}",
        f"Succeeded: {state.succeeded}",
        f"Failed: {state.failed}",
    ]
    if config.dry_run:
        lines.append("Mode: DRY RUN (no records were modified)")
    elif state.irreversible or config.hard_delete:
        lines.append("WARNING: hard delete, records are not recoverable")
    if abort_reason:
        lines.append(f"Abort reason: {abort_reason}")
    if state.error_log:
        lines.append("")
        lines.append(f"Errors ({len(state.error_log)} shown of {state.failed}):")
        lines.extend(entry.describe() for entry in state.error_log)
    return JobReport(subject=subject, body="\n".join(lines) + "\n")


@runtime_checkable
class NotificationChannel(Protocol):
    """Delivers a rendered report to one address."""

    def send(self, to: str, subject: str, body: str) -> None:
        ...


class LogNotificationChannel:
    """Channel that writes the report to the log instead of mailing it."""

    def __init__(self, sender: str | None = None):
        self._sender = sender
        self.sent: list[tuple[str, str]] = []

    def send(self, to: str, subject: str, body: str) -> None:
        self.sent.append((to, subject))
        logger.info(
            "report_notification",
            extra={"to": to, "sender": self._sender, "subject": subject, "body": body},
        )


class Reporter:
    """Formats the final report and dispatches it (best effort)."""

    def __init__(
        self,
        channel: NotificationChannel | None = None,
        environment: str = "development",
    ):
        self._channel = channel or LogNotificationChannel()
        self._environment = environment

    @property
    def delivery_enabled(self) -> bool:
        return self._environment == PRODUCTION

    def report(
        self,
        state: JobState,
        job_id: str,
        status: JobStatus,
        config: JobConfiguration,
        abort_reason: str | None = None,
    ) -> JobReport:
        """Log the summary and, if requested, send the notification."""
        report = format_report(state, job_id, status, config, abort_reason)

        logger.info(
            "job_summary",
            extra={
                "job_id": job_id,
                "status": status.value,
                "total_processed": state.total_processed,
                "succeeded": state.succeeded,
                "failed": state.failed,
                "dry_run": config.dry_run,
                "irreversible": state.irreversible,
            },
        )

        if not config.send_report:
            return report
        if not config.notification_target:
            logger.warning("report_no_target", extra={"job_id": job_id})
            return report
        if not self.delivery_enabled:
            logger.info(
                "report_delivery_suppressed",
                extra={"job_id": job_id, "environment": self._environment},
            )
            return report

        try:
            self._deliver(config.notification_target, report)
        except ReportDeliveryError:
            logger.exception("report_delivery_failed", extra={"job_id": job_id})
        return report

    def _deliver(self, target: str, report: JobReport) -> None:
        try:
            self._channel.send(target, report.subject, report.body)
        except Exception as exc:
            raise ReportDeliveryError(target, str(exc)) from exc
