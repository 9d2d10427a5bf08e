"""
Fact change batch endpoints.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_current_user, get_fact_change_batch_service
from app.api.errors import to_http_exception
from app.schemas.fact_change import (
    BatchDecisionResponse,
    BatchResponse,
    BatchSubmitRequest,
    BatchSubmitResponse,
    FactChangeResponse,
    RejectRequest,
)
from app.services.fact_change_batch_service import BatchDecision, FactChangeBatchService
from kpi.errors import KPIWorkflowError

router = APIRouter(prefix="/kpi-fact-change-batches", tags=["kpi-fact-change-batches"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=BatchSubmitResponse)
async def submit_batch(
    body: BatchSubmitRequest,
    user: str = Depends(get_current_user),
    service: FactChangeBatchService = Depends(get_fact_change_batch_service),
) -> BatchSubmitResponse:
    try:
        submission = await service.submit_batch(
            body.kpi_year_plan_id,
            body.year,
            [row.to_row() for row in body.rows],
            user,
        )
    except KPIWorkflowError as exc:
        raise to_http_exception(exc) from exc

    return BatchSubmitResponse(
        batch=BatchResponse.model_validate(submission.batch),
        changes=[FactChangeResponse.model_validate(change) for change in submission.changes],
        skipped_fact_ids=submission.skipped_fact_ids,
    )


@router.post("/{batch_id}/approve", response_model=BatchDecisionResponse)
async def approve_batch(
    batch_id: UUID,
    user: str = Depends(get_current_user),
    service: FactChangeBatchService = Depends(get_fact_change_batch_service),
) -> BatchDecisionResponse:
    try:
        decision = await service.approve_batch(batch_id, user)
    except KPIWorkflowError as exc:
        raise to_http_exception(exc) from exc
    return _to_decision_response(decision)


@router.post("/{batch_id}/reject", response_model=BatchDecisionResponse)
async def reject_batch(
    batch_id: UUID,
    body: RejectRequest,
    user: str = Depends(get_current_user),
    service: FactChangeBatchService = Depends(get_fact_change_batch_service),
) -> BatchDecisionResponse:
    try:
        decision = await service.reject_batch(batch_id, user, body.reason)
    except KPIWorkflowError as exc:
        raise to_http_exception(exc) from exc
    return _to_decision_response(decision)


def _to_decision_response(decision: BatchDecision) -> BatchDecisionResponse:
    return BatchDecisionResponse(
        batch=BatchResponse.model_validate(decision.batch),
        affected=decision.affected,
    )
