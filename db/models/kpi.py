"""
db/models/kpi.py

KPI dimension row. The workflow only reads its code and name to label
notifications; KPI CRUD lives elsewhere.
"""

import uuid

from sqlalchemy import Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import AuditMixin, Base


class Kpi(Base, AuditMixin):
    __tablename__ = "kpis"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    __table_args__ = (Index("ix_kpis_is_active", "is_active"),)

    def __repr__(self) -> str:
        return f"<Kpi id={self.id} code={self.code!r}>"
