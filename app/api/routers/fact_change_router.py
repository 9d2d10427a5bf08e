"""
Fact change request endpoints: submit, review and the reviewer inbox.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.dependencies import get_current_user, get_fact_change_service, get_policy
from app.api.errors import to_http_exception
from app.schemas.fact_change import (
    FactChangeListResponse,
    FactChangeResponse,
    FactChangeSubmitRequest,
    HasPendingResponse,
    PendingCountResponse,
    RejectRequest,
)
from app.services.access import OwnerOrAdminPolicy
from app.services.fact_change_service import FactChangeService
from db.models.fact_change import ApprovalStatus
from kpi.errors import KPIWorkflowError

router = APIRouter(prefix="/kpi-fact-changes", tags=["kpi-fact-changes"])

_STATUS_FILTERS = {ApprovalStatus.PENDING, ApprovalStatus.APPROVED, ApprovalStatus.REJECTED}


@router.get("/has-pending", response_model=HasPendingResponse)
async def has_pending(
    kpi_fact_id: UUID = Query(..., description="Fact to check"),
    service: FactChangeService = Depends(get_fact_change_service),
) -> HasPendingResponse:
    pending = await service.has_pending(kpi_fact_id)
    return HasPendingResponse(kpi_fact_id=kpi_fact_id, has_pending=pending)


@router.get("/pending-count", response_model=PendingCountResponse)
async def pending_count(
    user: str = Depends(get_current_user),
    policy: OwnerOrAdminPolicy = Depends(get_policy),
    service: FactChangeService = Depends(get_fact_change_service),
) -> PendingCountResponse:
    count = await service.count_pending(user, all_plans=policy.is_admin(user))
    return PendingCountResponse(count=count)


@router.get("", response_model=FactChangeListResponse)
async def list_changes(
    status_filter: str = Query(
        default=ApprovalStatus.PENDING,
        alias="status",
        description="pending, approved, rejected or all",
    ),
    limit: int = Query(default=100, ge=1, le=500),
    user: str = Depends(get_current_user),
    policy: OwnerOrAdminPolicy = Depends(get_policy),
    service: FactChangeService = Depends(get_fact_change_service),
) -> FactChangeListResponse:
    wanted = status_filter.strip().lower()
    if wanted != "all" and wanted not in _STATUS_FILTERS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown status filter: {status_filter}",
        )

    changes = await service.list_changes(
        user,
        status=None if wanted == "all" else wanted,
        all_plans=policy.is_admin(user),
        limit=limit,
    )
    return FactChangeListResponse(
        changes=[FactChangeResponse.model_validate(change) for change in changes]
    )


@router.post("", status_code=status.HTTP_201_CREATED, response_model=FactChangeResponse)
async def submit_change(
    body: FactChangeSubmitRequest,
    user: str = Depends(get_current_user),
    service: FactChangeService = Depends(get_fact_change_service),
) -> FactChangeResponse:
    try:
        change = await service.submit(body.kpi_fact_id, body.to_values(), user)
    except KPIWorkflowError as exc:
        raise to_http_exception(exc) from exc
    return FactChangeResponse.model_validate(change)


@router.post("/{change_id}/approve", response_model=FactChangeResponse)
async def approve_change(
    change_id: UUID,
    user: str = Depends(get_current_user),
    service: FactChangeService = Depends(get_fact_change_service),
) -> FactChangeResponse:
    try:
        change = await service.approve(change_id, user)
    except KPIWorkflowError as exc:
        raise to_http_exception(exc) from exc
    return FactChangeResponse.model_validate(change)


@router.post("/{change_id}/reject", response_model=FactChangeResponse)
async def reject_change(
    change_id: UUID,
    body: RejectRequest,
    user: str = Depends(get_current_user),
    service: FactChangeService = Depends(get_fact_change_service),
) -> FactChangeResponse:
    try:
        change = await service.reject(change_id, user, body.reason)
    except KPIWorkflowError as exc:
        raise to_http_exception(exc) from exc
    return FactChangeResponse.model_validate(change)
