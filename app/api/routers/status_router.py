"""
Status recompute endpoints.

Normally statuses are recomputed as part of an approval; these endpoints let
an operator re-run the engine after a plan or period was corrected by hand.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_user, get_status_service
from app.api.errors import to_http_exception
from app.schemas.fact_change import FactStatusResponse, PlanYearRecomputeResponse
from app.services.status_service import KPIStatusService
from db.session import get_db, transaction
from kpi.errors import KPIWorkflowError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["kpi-status"])


@router.post("/kpi-facts/{fact_id}/recompute-status", response_model=FactStatusResponse)
async def recompute_fact_status(
    fact_id: UUID,
    user: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: KPIStatusService = Depends(get_status_service),
) -> FactStatusResponse:
    try:
        async with transaction(db):
            status_code = await service.compute_and_set(fact_id)
    except KPIWorkflowError as exc:
        raise to_http_exception(exc) from exc

    logger.info("Fact status recomputed fact_id=%s by=%s status=%r", fact_id, user, status_code)
    return FactStatusResponse(kpi_fact_id=fact_id, status_code=status_code)


@router.post(
    "/kpi-year-plans/{plan_id}/recompute-status",
    response_model=PlanYearRecomputeResponse,
)
async def recompute_plan_year(
    plan_id: UUID,
    year: int = Query(..., ge=1900, le=9999),
    user: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: KPIStatusService = Depends(get_status_service),
) -> PlanYearRecomputeResponse:
    try:
        async with transaction(db):
            changed = await service.recompute_plan_year(plan_id, year)
    except KPIWorkflowError as exc:
        raise to_http_exception(exc) from exc

    logger.info(
        "Plan-year status recomputed plan_id=%s year=%d by=%s changed=%d",
        plan_id,
        year,
        user,
        changed,
    )
    return PlanYearRecomputeResponse(kpi_year_plan_id=plan_id, year=year, changed=changed)
