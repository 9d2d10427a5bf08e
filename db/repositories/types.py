"""
Typed DTOs exchanged between the workflow services and the repositories.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from decimal import Decimal

from kpi.status import parse_status_code


@dataclass(frozen=True)
class ProposedValues:
    """
    Replacement values proposed for one fact.

    ``None`` means "keep the current value"; only supplied fields are applied.
    """

    actual: Decimal | None = None
    target: Decimal | None = None
    forecast: Decimal | None = None
    status_code: str | None = None

    def normalized(self) -> ProposedValues:
        """
        Blank status codes become ``None``; known codes are lower-cased.

        Raises ValidationError for a status code the engine does not know.
        """
        return replace(self, status_code=parse_status_code(self.status_code))

    def is_empty(self) -> bool:
        normalized = self.normalized()
        return (
            normalized.actual is None
            and normalized.target is None
            and normalized.forecast is None
            and normalized.status_code is None
        )


@dataclass(frozen=True)
class BatchRow:
    """One fact of a batch submission and the values proposed for it."""

    kpi_fact_id: uuid.UUID
    values: ProposedValues


@dataclass(frozen=True)
class KpiLabel:
    """Code and name used to label notifications."""

    code: str
    name: str

    @classmethod
    def unknown(cls) -> KpiLabel:
        return cls(code="KPI", name="-")
