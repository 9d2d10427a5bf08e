"""
db/models/fact_change_batch.py

A group of change requests submitted together for one plan-year, reviewed
as a single unit.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin
from db.models.fact_change import ApprovalStatus


class KpiFactChangeBatch(Base, TimestampMixin):
    """
    ``period_min`` / ``period_max`` are month numbers for monthly batches and
    quarter numbers for quarterly ones. The batch status is stamped once,
    together with the cascade onto its pending children.
    """

    __tablename__ = "kpi_fact_change_batches"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    kpi_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("kpis.id", ondelete="CASCADE"),
        nullable=False,
    )

    kpi_year_plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("kpi_year_plans.id", ondelete="CASCADE"),
        nullable=False,
    )

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    frequency: Mapped[str] = mapped_column(String(30), nullable=False)

    period_min: Mapped[int | None] = mapped_column(Integer, nullable=True)

    period_max: Mapped[int | None] = mapped_column(Integer, nullable=True)

    row_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    skipped_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    submitted_by: Mapped[str] = mapped_column(String(150), nullable=False)

    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    approval_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ApprovalStatus.PENDING,
    )

    reviewed_by: Mapped[str | None] = mapped_column(String(150), nullable=True)

    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    reject_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_kpi_fact_change_batches_plan_year", "kpi_year_plan_id", "year"),
        Index("ix_kpi_fact_change_batches_approval_status", "approval_status"),
    )

    def __repr__(self) -> str:
        return f"<KpiFactChangeBatch id={self.id} status={self.approval_status!r}>"
