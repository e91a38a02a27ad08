"""
Run a deletion job, or inspect one, from the command line.

Usage:
    purge-run --query "<descriptor>" [options]
    purge-run --status <job-id> [--db-url URL | --settings FILE]

Examples:
    # Preview what a job would remove
    purge-run --settings purge.yaml \\
        --query "SELECT Id FROM contact WHERE status = 'stale'" --dry-run

    # Soft delete in chunks of 500, mailing the report
    purge-run --settings purge.yaml --chunk-size 500 --send-report \\
        --notify ops@example.com \\
        --query "SELECT Id FROM contact WHERE status = 'stale'"

    # Status of an earlier job
    purge-run --settings purge.yaml --status 5b0c3f64-9a0e-4c55-8d2e-0a1b2c3d4e5f

The status record is committed as soon as the job starts and again after
every chunk, together with that chunk's deletions, so ``purge-run --status``
from another shell shows live progress.  Ctrl-C stops the job between
chunks; the work done so far stays committed and the job is recorded as
CANCELLED.

Exit codes: 0 job COMPLETE (or status printed), 1 job ABORTED/CANCELLED or
job not found, 2 invalid arguments or configuration.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Sequence
from uuid import UUID

from purge_kernel.exceptions import ConfigurationError, JobNotFoundError
from purge_kernel.logging_config import configure_logging, get_logger

from purge_batch.config import BatchSettings, load_settings
from purge_batch.domain.types import JobStatus, JobStatusView

logger = get_logger("batch.cli")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="purge-run",
        description="Run a chunked deletion job or show the status of one.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--query", help="Selection descriptor (SELECT <id> FROM <table> ...).")
    target.add_argument("--status", type=UUID, metavar="JOB_ID", help="Print a job's status.")

    parser.add_argument("--settings", type=Path, help="YAML settings file.")
    parser.add_argument("--db-url", help="Database URL (overrides settings database_url).")
    parser.add_argument("--chunk-size", type=int, help="Records per chunk (default from settings).")
    parser.add_argument("--all-or-none", action="store_true", help="Any failure aborts the job.")
    parser.add_argument(
        "--scope",
        choices=["job", "chunk"],
        help="Reach of an all-or-none failure (default from settings).",
    )
    parser.add_argument("--hard-delete", action="store_true", help="Delete irreversibly.")
    parser.add_argument("--dry-run", action="store_true", help="Report only; change nothing.")
    parser.add_argument("--send-report", action="store_true", help="Mail the final report.")
    parser.add_argument("--notify", metavar="ADDRESS", help="Report recipient.")
    parser.add_argument("--actor-id", type=UUID, help="Invoking principal (default: new UUID).")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args(argv)


def _print_status(view: JobStatusView) -> None:
    print(f"Job ID: {view.job_id}")
    print(f"Status: {view.status.value.upper()}")
    total = "unknown" if view.total_items is None else view.total_items
    print(f"Processed: {view.items_processed} of {total}")
    print(f"Errors: {view.number_of_errors}")
    if view.error_summary:
        print(f"Summary: {view.error_summary}")


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(level=getattr(logging, args.log_level))

    try:
        settings = load_settings(args.settings) if args.settings else BatchSettings()
    except (OSError, ConfigurationError) as e:
        print(f"ERROR: Failed to load settings: {e}", file=sys.stderr)
        return 2

    db_url = args.db_url or settings.database_url
    if not db_url:
        print("ERROR: No database URL (use --db-url or database_url in settings).", file=sys.stderr)
        return 2

    # Lazy imports so argument errors fail fast
    import purge_batch.models  # noqa: F401  (registers status tables)
    from purge_kernel.db.engine import create_tables, init_engine_from_url, session_scope

    from purge_batch.orchestrator import BatchOrchestrator
    from purge_batch.services.status import JobStatusStore

    init_engine_from_url(db_url)
    create_tables()

    if args.status is not None:
        with session_scope() as session:
            try:
                view = JobStatusStore(session).get_status(args.status)
            except JobNotFoundError as e:
                print(f"ERROR: {e}", file=sys.stderr)
                return 1
            _print_status(view)
        return 0

    cancel = threading.Event()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())
    try:
        with session_scope() as session:
            orchestrator = BatchOrchestrator.from_session(
                session,
                settings=settings,
                actor_id=args.actor_id,
                principal_address=args.notify,
                commit_per_chunk=True,
            )
            try:
                job = (
                    orchestrator.job(args.query)
                    .set_all_or_none(args.all_or_none)
                    .set_hard_delete(args.hard_delete)
                    .set_dry_run(args.dry_run)
                    .set_send_report(args.send_report)
                )
                if args.scope is not None:
                    job.set_all_or_none_scope(args.scope)
                config = job.configuration(args.chunk_size)
            except ConfigurationError as e:
                print(f"ERROR: {e}", file=sys.stderr)
                return 2

            outcome = orchestrator.run(config, cancel_event=cancel)
            view = orchestrator.get_status(outcome.job_id)
            _print_status(view)
            if outcome.report is not None:
                print()
                print(outcome.report.body, end="")
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    return 0 if outcome.status == JobStatus.COMPLETE else 1


if __name__ == "__main__":
    sys.exit(main())
