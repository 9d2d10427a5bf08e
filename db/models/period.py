"""
db/models/period.py

Reporting period dimension.

A row is a month (``month_num``), a quarter (``quarter_num``) or, with
neither set, a whole year. Rows are immutable once created and the
``(year, month_num, quarter_num)`` tuple is unique.
"""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import AuditMixin, Base


class Period(Base, AuditMixin):
    __tablename__ = "periods"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    year: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    month_num: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="1-12 for monthly periods",
    )

    quarter_num: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="1-4 for quarterly periods",
    )

    start_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    end_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Explicit reporting deadline; derived from year/month/quarter when null",
    )

    __table_args__ = (
        UniqueConstraint("year", "month_num", "quarter_num", name="uq_periods_year_month_quarter"),
        CheckConstraint(
            "month_num IS NULL OR quarter_num IS NULL",
            name="ck_periods_month_xor_quarter",
        ),
        CheckConstraint(
            "month_num IS NULL OR (month_num BETWEEN 1 AND 12)",
            name="ck_periods_month_range",
        ),
        CheckConstraint(
            "quarter_num IS NULL OR (quarter_num BETWEEN 1 AND 4)",
            name="ck_periods_quarter_range",
        ),
        Index("ix_periods_year_start_date", "year", "start_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Period id={self.id} year={self.year} "
            f"month={self.month_num} quarter={self.quarter_num}>"
        )
