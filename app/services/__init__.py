"""
app/services package marker.
"""

from app.services.access import OwnerOrAdminPolicy, ReviewPolicy, normalize_identity
from app.services.fact_change_batch_service import (
    BatchDecision,
    BatchSubmission,
    FactChangeBatchService,
)
from app.services.fact_change_service import FactChangeService
from app.services.fact_store import FactStore
from app.services.notifications import NotificationDispatcher, Notifier, NotifyResult
from app.services.status_service import KPIStatusService

__all__ = [
    "BatchDecision",
    "BatchSubmission",
    "FactChangeBatchService",
    "FactChangeService",
    "FactStore",
    "KPIStatusService",
    "NotificationDispatcher",
    "Notifier",
    "NotifyResult",
    "OwnerOrAdminPolicy",
    "ReviewPolicy",
    "normalize_identity",
]
