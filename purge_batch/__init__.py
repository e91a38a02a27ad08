"""
purge_batch -- Chunked bulk-deletion job core.

Applies a delete, hard delete or dry-run operation to an arbitrarily large
record selection in bounded-size chunks, with per-record error isolation,
aggregate statistics kept across chunks, a queryable job-status record, and
a final report.

Architecture:
    purge_batch/ is a top-level package built on purge_kernel (exceptions,
    logging, clock, declarative base).  Nothing in purge_kernel imports
    from purge_batch.

    domain/     pure types, selection parsing, configuration, job state
    sources/    ChunkSource implementations (streamed identifier chunks)
    mutation/   MutationExecutor implementations (per-chunk mutation)
    models/     ORM rows for the job-status record and capped error log
    services/   runner state machine, status store, reporter
    orchestrator.py  DI container and job control surface

Invariants:
    total_processed == succeeded + failed after every chunk
    len(error_log) <= error_log_cap; failures past the cap are still counted
    Configuration is validated once, before any chunk is pulled
    All-or-none (job scope) stops the job after the violating chunk
    Report delivery never changes the terminal status
"""
