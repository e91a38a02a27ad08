"""
purge_batch.models -- ORM models for job-status persistence.

Architecture: purge_batch/models. Imports from purge_kernel.db.base only.
"""

from purge_batch.models.job import DeletionErrorModel, DeletionJobModel

__all__ = [
    "DeletionErrorModel",
    "DeletionJobModel",
]
