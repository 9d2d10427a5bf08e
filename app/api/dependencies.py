"""
app/api/dependencies.py

Shared FastAPI dependencies: acting identity and request-scoped services.
"""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_notification_settings
from app.services.access import OwnerOrAdminPolicy, get_review_policy, normalize_identity
from app.services.fact_change_batch_service import FactChangeBatchService
from app.services.fact_change_service import FactChangeService
from app.services.notifications import NotificationDispatcher, get_notification_dispatcher
from app.services.status_service import KPIStatusService
from db.session import get_db

IDENTITY_HEADER = "X-User-Id"


def get_current_user(
    x_user_id: str | None = Header(default=None, alias=IDENTITY_HEADER),
) -> str:
    """
    Normalized identity set by the authenticating proxy.
    """

    identity = normalize_identity(x_user_id)
    if not identity:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {IDENTITY_HEADER} header.",
        )
    return identity


def get_dispatcher() -> NotificationDispatcher:
    return get_notification_dispatcher()


def get_policy() -> OwnerOrAdminPolicy:
    return get_review_policy()


def get_status_service(db: AsyncSession = Depends(get_db)) -> KPIStatusService:
    return KPIStatusService(db)


def get_fact_change_service(
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    policy: OwnerOrAdminPolicy = Depends(get_policy),
) -> FactChangeService:
    return FactChangeService(
        db,
        dispatcher=dispatcher,
        review_policy=policy,
        inbox_url=get_notification_settings().inbox_url,
    )


def get_fact_change_batch_service(
    db: AsyncSession = Depends(get_db),
    change_service: FactChangeService = Depends(get_fact_change_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> FactChangeBatchService:
    return FactChangeBatchService(db, change_service=change_service, dispatcher=dispatcher)
