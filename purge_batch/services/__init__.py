"""
purge_batch.services -- Runner, status store and reporter.
"""

from purge_batch.services.reporter import (
    JobReport,
    LogNotificationChannel,
    NotificationChannel,
    Reporter,
    format_report,
)
from purge_batch.services.runner import BatchJobRunner, JobOutcome
from purge_batch.services.status import JobStatusStore

__all__ = [
    "BatchJobRunner",
    "JobOutcome",
    "JobReport",
    "JobStatusStore",
    "LogNotificationChannel",
    "NotificationChannel",
    "Reporter",
    "format_report",
]
