"""
db/models/fact.py

Recorded actual / target / forecast and computed status for one KPI in one
reporting period.
"""

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import AuditMixin, Base

if TYPE_CHECKING:
    from db.models.period import Period
    from db.models.year_plan import KpiYearPlan


class KpiFact(Base, AuditMixin):
    """
    One row per (year plan, period).

    Values change only through the fact change workflow; ``status_code`` is
    owned by the status engine.
    """

    __tablename__ = "kpi_facts"

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

    period_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("periods.id"),
        nullable=False,
    )

    actual_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)

    target_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)

    forecast_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)

    budget: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)

    status_code: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        comment="ok, needs_attention, catching_up, data_missing",
    )

    # ── Relationships ──────────────────────────────────────────────────────────

    period: Mapped["Period"] = relationship("Period", lazy="raise")

    year_plan: Mapped["KpiYearPlan"] = relationship("KpiYearPlan", lazy="raise")

    # ── Indexes ────────────────────────────────────────────────────────────────

    __table_args__ = (
        UniqueConstraint("kpi_year_plan_id", "period_id", name="uq_kpi_facts_plan_period"),
        Index("ix_kpi_facts_kpi_id", "kpi_id"),
    )

    def __repr__(self) -> str:
        return f"<KpiFact id={self.id} plan={self.kpi_year_plan_id} status={self.status_code!r}>"
