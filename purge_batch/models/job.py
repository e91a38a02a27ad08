"""
ORM models for the deletion job-status record.

Contract:
    DeletionJobModel is the externally queryable status row, updated after
    every chunk.  DeletionErrorModel holds the capped per-record error log
    written at finalize.  ``to_status_view()`` projects the row into the
    read-only JobStatusView.

Architecture: purge_batch/models. Imports from purge_kernel.db.base only.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from purge_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from purge_batch.domain.types import ErrorLogEntry, JobStatusView


class DeletionJobModel(TrackedBase):
    """Persistent job-status record."""

    __tablename__ = "deletion_jobs"

    __table_args__ = (
        Index("ix_deletion_jobs_status", "status"),
        Index("ix_deletion_jobs_created_at", "created_at"),
    )

    status: Mapped[str] = mapped_column(String(50), nullable=False)
    query_text: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(String(200), nullable=False)
    operation: Mapped[str] = mapped_column(String(50), nullable=False)
    all_or_none: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    dry_run: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    chunk_size: Mapped[int] = mapped_column(Integer, nullable=False)
    notification_target: Mapped[str | None] = mapped_column(String(320), nullable=True)
    total_items: Mapped[int | None] = mapped_column(Integer, nullable=True)
    items_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    succeeded_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    number_of_errors: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    chunks_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    errors: Mapped[list["DeletionErrorModel"]] = relationship(
        "DeletionErrorModel",
        back_populates="job",
        foreign_keys="DeletionErrorModel.job_id",
        order_by="DeletionErrorModel.position",
    )

    def to_status_view(self) -> JobStatusView:
        from purge_batch.domain.types import JobStatus, JobStatusView

        return JobStatusView(
            job_id=str(self.id),
            status=JobStatus(self.status),
            number_of_errors=self.number_of_errors,
            items_processed=self.items_processed,
            total_items=self.total_items,
            error_summary=self.error_summary,
        )


class DeletionErrorModel(TrackedBase):
    """One persisted line of a job's capped error log."""

    __tablename__ = "deletion_job_errors"

    __table_args__ = (
        Index("ix_deletion_job_errors_job", "job_id", "position"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("deletion_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    identifier: Mapped[str] = mapped_column(String(200), nullable=False)
    error_code: Mapped[str] = mapped_column(String(100), nullable=False)
    failed_fields: Mapped[str | None] = mapped_column(Text, nullable=True)
    chunk_index: Mapped[int | None] = mapped_column(Integer, nullable=True)

    job: Mapped["DeletionJobModel"] = relationship(
        "DeletionJobModel",
        back_populates="errors",
        foreign_keys=[job_id],
    )

    def to_dto(self) -> ErrorLogEntry:
        from purge_batch.domain.types import ErrorLogEntry

        fields = tuple(f for f in (self.failed_fields or "").split(",") if f)
        return ErrorLogEntry(
            identifier=self.identifier,
            error_code=self.error_code,
            failed_fields=fields,
            chunk_index=self.chunk_index,
        )

    @classmethod
    def from_dto(
        cls, dto: ErrorLogEntry, job_id: UUID, position: int, created_by_id: UUID,
    ) -> DeletionErrorModel:
        return cls(
            job_id=job_id,
            position=position,
            identifier=dto.identifier,
            error_code=dto.error_code,
            failed_fields=",".join(dto.failed_fields) or None,
            chunk_index=dto.chunk_index,
            created_by_id=created_by_id,
        )
