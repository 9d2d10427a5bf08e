"""
Request and response schemas for the fact change workflow endpoints.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from db.repositories.types import BatchRow, ProposedValues


class ProposedValuesPayload(BaseModel):
    actual_value: Decimal | None = None
    target_value: Decimal | None = None
    forecast_value: Decimal | None = None
    status_code: str | None = Field(default=None, max_length=50)

    def to_values(self) -> ProposedValues:
        return ProposedValues(
            actual=self.actual_value,
            target=self.target_value,
            forecast=self.forecast_value,
            status_code=self.status_code,
        )


class FactChangeSubmitRequest(ProposedValuesPayload):
    kpi_fact_id: UUID


class RejectRequest(BaseModel):
    reason: str = Field(default="", max_length=2000)


class BatchRowPayload(ProposedValuesPayload):
    kpi_fact_id: UUID

    def to_row(self) -> BatchRow:
        return BatchRow(kpi_fact_id=self.kpi_fact_id, values=self.to_values())


class BatchSubmitRequest(BaseModel):
    kpi_year_plan_id: UUID
    year: int = Field(..., ge=1900, le=9999)
    rows: list[BatchRowPayload] = Field(..., min_length=1)


class FactChangeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kpi_fact_id: UUID
    proposed_actual_value: Decimal | None = None
    proposed_target_value: Decimal | None = None
    proposed_forecast_value: Decimal | None = None
    proposed_status_code: str | None = None
    submitted_by: str
    submitted_at: datetime
    approval_status: str
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    reject_reason: str | None = None
    batch_id: UUID | None = None


class FactChangeListResponse(BaseModel):
    changes: list[FactChangeResponse] = Field(default_factory=list)


class HasPendingResponse(BaseModel):
    kpi_fact_id: UUID
    has_pending: bool


class PendingCountResponse(BaseModel):
    count: int = Field(..., ge=0)


class BatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kpi_id: UUID
    kpi_year_plan_id: UUID
    year: int
    frequency: str
    period_min: int | None = None
    period_max: int | None = None
    row_count: int = Field(..., ge=0)
    skipped_count: int = Field(..., ge=0)
    submitted_by: str
    submitted_at: datetime
    approval_status: str
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    reject_reason: str | None = None


class BatchSubmitResponse(BaseModel):
    batch: BatchResponse
    changes: list[FactChangeResponse] = Field(default_factory=list)
    skipped_fact_ids: list[UUID] = Field(default_factory=list)


class BatchDecisionResponse(BaseModel):
    batch: BatchResponse
    affected: int = Field(..., ge=0)


class FactStatusResponse(BaseModel):
    kpi_fact_id: UUID
    status_code: str


class PlanYearRecomputeResponse(BaseModel):
    kpi_year_plan_id: UUID
    year: int
    changed: int = Field(..., ge=0)
