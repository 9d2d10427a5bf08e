"""
db/models/fact_change.py

A proposed replacement for some of a fact's values, awaiting review.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin

PENDING_UNIQUE_INDEX = "uq_kpi_fact_changes_one_pending"


class ApprovalStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class KpiFactChange(Base, TimestampMixin):
    """
    Lifecycle: ``pending`` → ``approved`` | ``rejected``; terminal rows are
    never modified again.

    Only non-null ``proposed_*`` values are applied on approval. A partial
    unique index guarantees at most one pending change per fact.
    """

    __tablename__ = "kpi_fact_changes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    kpi_fact_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("kpi_facts.id", ondelete="CASCADE"),
        nullable=False,
    )

    proposed_actual_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)

    proposed_target_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)

    proposed_forecast_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)

    proposed_status_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

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

    batch_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("kpi_fact_change_batches.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        Index(
            PENDING_UNIQUE_INDEX,
            "kpi_fact_id",
            unique=True,
            postgresql_where=text("approval_status = 'pending'"),
            sqlite_where=text("approval_status = 'pending'"),
        ),
        Index("ix_kpi_fact_changes_approval_status", "approval_status"),
        Index("ix_kpi_fact_changes_batch_id_status", "batch_id", "approval_status"),
    )

    def __repr__(self) -> str:
        return (
            f"<KpiFactChange id={self.id} fact={self.kpi_fact_id} "
            f"status={self.approval_status!r}>"
        )
