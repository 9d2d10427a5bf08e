"""
app/schemas package marker.
"""

from app.schemas.fact_change import (
    BatchDecisionResponse,
    BatchResponse,
    BatchSubmitRequest,
    BatchSubmitResponse,
    FactChangeListResponse,
    FactChangeResponse,
    FactChangeSubmitRequest,
    FactStatusResponse,
    HasPendingResponse,
    PendingCountResponse,
    PlanYearRecomputeResponse,
    RejectRequest,
)

__all__ = [
    "BatchDecisionResponse",
    "BatchResponse",
    "BatchSubmitRequest",
    "BatchSubmitResponse",
    "FactChangeListResponse",
    "FactChangeResponse",
    "FactChangeSubmitRequest",
    "FactStatusResponse",
    "HasPendingResponse",
    "PendingCountResponse",
    "PlanYearRecomputeResponse",
    "RejectRequest",
]
