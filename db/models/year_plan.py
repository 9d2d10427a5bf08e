"""
db/models/year_plan.py

A KPI's configuration for one year: frequency, direction, owner and editor.
"""

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import AuditMixin, Base

if TYPE_CHECKING:
    from db.models.period import Period


class PlanFrequency:
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class KpiYearPlan(Base, AuditMixin):
    """
    One row per (KPI, year period).

    ``target_direction`` must be ``1`` (higher is better) or ``-1`` (lower is
    better). The column is nullable so that misconfigured legacy rows can be
    stored, but the status engine refuses to evaluate them.

    ``owner_id`` approves changes proposed by ``editor_id``; when both hold
    the same identity, changes are approved on submission.
    """

    __tablename__ = "kpi_year_plans"

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

    period_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("periods.id"),
        nullable=False,
        comment="Year period this plan covers",
    )

    frequency: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=PlanFrequency.MONTHLY,
    )

    target_direction: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="1 ascending-is-better, -1 descending-is-better",
    )

    owner_id: Mapped[str | None] = mapped_column(String(150), nullable=True)

    editor_id: Mapped[str | None] = mapped_column(String(150), nullable=True)

    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="")

    annual_target: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)

    annual_budget: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)

    priority: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # ── Relationships ──────────────────────────────────────────────────────────

    period: Mapped["Period"] = relationship("Period", lazy="raise")

    # ── Indexes ────────────────────────────────────────────────────────────────

    __table_args__ = (
        UniqueConstraint("kpi_id", "period_id", name="uq_kpi_year_plans_kpi_period"),
        Index("ix_kpi_year_plans_owner_id", "owner_id"),
    )

    def __repr__(self) -> str:
        return f"<KpiYearPlan id={self.id} kpi_id={self.kpi_id} direction={self.target_direction}>"
