"""
app/services/fact_change_service.py

Change request workflow for KPI facts.

Lifecycle
---------
    submit ──► pending ──► approve ──► approved   (values applied, status recomputed)
                      └──► reject  ──► rejected   (fact untouched)

When a plan's owner is also its editor, a submitted change is approved on the
spot with the owner as reviewer and nobody is notified.

Every public operation runs as one unit of work: fact mutation, fact status
recompute and plan-year recompute happen inside the same transaction, and
notifications are dispatched only after it has committed. Handed a session
that is already in a transaction, the service works in a SAVEPOINT and leaves
its notifications on the session for the caller to send after the outer
commit (``app.services.notifications.drain_outbox``).

The ``*_within`` / ``apply_*`` methods do the same work without opening a
transaction or sending anything; the batch workflow composes them inside its
own unit of work.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.logging_utils import log_event
from app.services.access import ReviewPolicy, normalize_identity
from app.services.fact_store import FactStore
from app.services.notifications import (
    Notification,
    NotificationDispatcher,
    change_approved,
    change_rejected,
    deliver,
    get_notification_dispatcher,
    pending_review,
)
from app.services.status_service import KPIStatusService
from db.models.fact import KpiFact
from db.models.fact_change import ApprovalStatus, KpiFactChange
from db.models.year_plan import KpiYearPlan
from db.repositories.fact_change_repository import FactChangeRepository
from db.repositories.plan_repository import PlanRepository
from db.repositories.types import ProposedValues
from db.session import transaction
from kpi.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from kpi.period_clock import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmitOutcome:
    change: KpiFactChange
    auto_approved: bool


def is_self_approving(plan: KpiYearPlan) -> bool:
    """Owner and editor are the same non-blank identity (exact after trimming)."""
    owner = (plan.owner_id or "").strip()
    editor = (plan.editor_id or "").strip()
    return bool(owner) and owner == editor


def proposed_values_of(change: KpiFactChange) -> ProposedValues:
    return ProposedValues(
        actual=change.proposed_actual_value,
        target=change.proposed_target_value,
        forecast=change.proposed_forecast_value,
        status_code=change.proposed_status_code,
    )


class FactChangeService:
    """
    Usage::

        service = FactChangeService(session)
        change = await service.submit(fact_id, ProposedValues(actual=Decimal("12")), "DOMAIN\\\\bob")
        await service.approve(change.id, "alice")
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        status_service: KPIStatusService | None = None,
        dispatcher: NotificationDispatcher | None = None,
        review_policy: ReviewPolicy | None = None,
        clock: Clock | None = None,
        inbox_url: str | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or utc_now
        self._status = status_service or KPIStatusService(session, clock=self._clock)
        self._store = FactStore(session, self._status)
        self._changes = FactChangeRepository(session)
        self._plans = PlanRepository(session)
        self._dispatcher = dispatcher or get_notification_dispatcher()
        self._policy = review_policy
        self._inbox_url = inbox_url

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def inbox_url(self) -> str | None:
        return self._inbox_url

    # ------------------------------------------------------------------
    # Reviewer inbox
    # ------------------------------------------------------------------

    async def has_pending(self, fact_id: uuid.UUID) -> bool:
        return await self._changes.has_pending(fact_id)

    async def count_pending(self, reviewer: str, *, all_plans: bool = False) -> int:
        """Pending changes on plans owned by *reviewer*, or everywhere for admins."""
        owner = None if all_plans else normalize_identity(reviewer)
        return await self._changes.count_pending(owner_id=owner)

    async def list_changes(
        self,
        reviewer: str,
        *,
        status: str | None = ApprovalStatus.PENDING,
        all_plans: bool = False,
        limit: int = 100,
    ) -> list[KpiFactChange]:
        owner = None if all_plans else normalize_identity(reviewer)
        return await self._changes.list_changes(status=status, owner_id=owner, limit=limit)

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    async def submit(
        self,
        fact_id: uuid.UUID,
        values: ProposedValues,
        submitted_by: str,
        *,
        batch_id: uuid.UUID | None = None,
    ) -> KpiFactChange:
        """
        Propose new values for one fact.

        Raises
        ------
        ValidationError
            When the submitter identity is blank or the status code is unknown.
        ConflictError
            When a pending change already exists for the fact.
        NotFoundError
            When the fact or its plan is missing or inactive.
        """
        submitter = _require_identity(submitted_by, "Submitter")
        outbox: list[Notification] = []
        committing = not self._session.in_transaction()
        async with transaction(self._session):
            outcome = await self.submit_within(
                fact_id,
                values,
                submitter,
                batch_id=batch_id,
                outbox=outbox,
            )
        await deliver(self._dispatcher, self._session, outbox, committed=committing)
        return outcome.change

    async def submit_within(
        self,
        fact_id: uuid.UUID,
        values: ProposedValues,
        submitter: str,
        *,
        batch_id: uuid.UUID | None = None,
        outbox: list[Notification] | None = None,
    ) -> SubmitOutcome:
        """
        Submit inside the caller's transaction.

        The owner notification is appended to *outbox* only for changes that
        are neither auto-approved nor part of a batch.
        """
        values = values.normalized()
        if await self._changes.has_pending(fact_id):
            raise ConflictError(f"A pending change already exists for KPI fact {fact_id}.")

        fact = await self._store.get_active_fact(fact_id)
        plan = await self._require_plan(fact)

        change = KpiFactChange(
            kpi_fact_id=fact.id,
            proposed_actual_value=values.actual,
            proposed_target_value=values.target,
            proposed_forecast_value=values.forecast,
            proposed_status_code=values.status_code,
            submitted_by=submitter,
            submitted_at=self._clock(),
            approval_status=ApprovalStatus.PENDING,
            batch_id=batch_id,
        )
        try:
            await self._changes.add_change(change)
        except IntegrityError as exc:
            raise ConflictError(
                f"A pending change already exists for KPI fact {fact_id}."
            ) from exc

        log_event(
            logger,
            logging.INFO,
            "fact_change.submitted",
            change_id=change.id,
            kpi_fact_id=fact.id,
            submitted_by=submitter,
            batch_id=batch_id,
        )

        if is_self_approving(plan):
            owner = normalize_identity(plan.owner_id)
            await self.apply_approval(change, owner, change.submitted_at, fact=fact)
            log_event(
                logger,
                logging.INFO,
                "fact_change.auto_approved",
                change_id=change.id,
                kpi_fact_id=fact.id,
                reviewed_by=owner,
            )
            return SubmitOutcome(change=change, auto_approved=True)

        if batch_id is None and outbox is not None:
            owner = normalize_identity(plan.owner_id)
            if owner:
                label = await self._plans.get_kpi_label(fact.kpi_id)
                outbox.append(
                    pending_review(owner, label, submitter, inbox_url=self._inbox_url)
                )
            else:
                logger.warning("Year plan %s has no owner; nobody to notify.", plan.id)

        return SubmitOutcome(change=change, auto_approved=False)

    # ------------------------------------------------------------------
    # Approve / reject
    # ------------------------------------------------------------------

    async def approve(
        self,
        change_id: uuid.UUID,
        reviewed_by: str,
        *,
        suppress_notification: bool = False,
    ) -> KpiFactChange:
        """
        Apply a pending change and recompute the fact and its plan-year.

        Raises NotFoundError, PermissionDeniedError or InvalidStateError.
        """
        reviewer = _require_identity(reviewed_by, "Reviewer")
        outbox: list[Notification] = []
        committing = not self._session.in_transaction()
        async with transaction(self._session):
            change, fact, _ = await self._load_for_review(change_id, reviewer)
            await self.apply_approval(change, reviewer, self._clock(), fact=fact)
            if not suppress_notification:
                label = await self._plans.get_kpi_label(fact.kpi_id)
                outbox.append(
                    change_approved(change.submitted_by, label, inbox_url=self._inbox_url)
                )
        await deliver(self._dispatcher, self._session, outbox, committed=committing)
        return change

    async def reject(
        self,
        change_id: uuid.UUID,
        reviewed_by: str,
        reason: str | None,
        *,
        suppress_notification: bool = False,
    ) -> KpiFactChange:
        """
        Close a pending change without touching its fact.

        The reason is checked before anything is loaded.
        """
        reason_text = require_reason(reason)
        reviewer = _require_identity(reviewed_by, "Reviewer")
        outbox: list[Notification] = []
        committing = not self._session.in_transaction()
        async with transaction(self._session):
            change, fact, _ = await self._load_for_review(change_id, reviewer)
            await self.apply_rejection(change, reviewer, reason_text, self._clock())
            if not suppress_notification:
                label = await self._plans.get_kpi_label(fact.kpi_id)
                outbox.append(
                    change_rejected(
                        change.submitted_by,
                        label,
                        reason_text,
                        inbox_url=self._inbox_url,
                    )
                )
        await deliver(self._dispatcher, self._session, outbox, committed=committing)
        return change

    async def apply_approval(
        self,
        change: KpiFactChange,
        reviewer: str,
        reviewed_at: datetime,
        *,
        fact: KpiFact | None = None,
    ) -> None:
        """Apply, stamp and recompute inside the caller's transaction."""
        _ensure_pending(change)
        if fact is None:
            fact = await self._store.get_fact(change.kpi_fact_id)

        self._store.apply(fact, proposed_values_of(change), changed_by=reviewer)
        change.approval_status = ApprovalStatus.APPROVED
        change.reviewed_by = reviewer
        change.reviewed_at = reviewed_at
        status = await self._store.recompute(fact)

        log_event(
            logger,
            logging.INFO,
            "fact_change.approved",
            change_id=change.id,
            kpi_fact_id=fact.id,
            reviewed_by=reviewer,
            status=status,
        )

    async def apply_rejection(
        self,
        change: KpiFactChange,
        reviewer: str,
        reason: str,
        reviewed_at: datetime,
    ) -> None:
        _ensure_pending(change)
        change.approval_status = ApprovalStatus.REJECTED
        change.reviewed_by = reviewer
        change.reviewed_at = reviewed_at
        change.reject_reason = reason
        await self._session.flush()

        log_event(
            logger,
            logging.INFO,
            "fact_change.rejected",
            change_id=change.id,
            kpi_fact_id=change.kpi_fact_id,
            reviewed_by=reviewer,
        )

    def authorize(self, reviewer: str, plan: KpiYearPlan) -> None:
        """No-op without a review policy."""
        if self._policy is not None and not self._policy.can_review(reviewer, plan):
            raise PermissionDeniedError(
                f"{reviewer or 'anonymous'} may not review changes on year plan {plan.id}."
            )

    async def _load_for_review(
        self,
        change_id: uuid.UUID,
        reviewer: str,
    ) -> tuple[KpiFactChange, KpiFact, KpiYearPlan]:
        change = await self._changes.get_change(change_id)
        if change is None:
            raise NotFoundError(f"Change request {change_id} not found.")
        fact = await self._store.get_fact(change.kpi_fact_id)
        plan = await self._require_plan(fact)
        self.authorize(reviewer, plan)
        _ensure_pending(change)
        return change, fact, plan

    async def _require_plan(self, fact: KpiFact) -> KpiYearPlan:
        plan = await self._plans.get_plan(fact.kpi_year_plan_id)
        if plan is None:
            raise NotFoundError(f"Year plan {fact.kpi_year_plan_id} not found.")
        return plan


def require_reason(reason: str | None) -> str:
    text = (reason or "").strip()
    if not text:
        raise ValidationError("A reject reason is required.")
    return text


def _require_identity(raw: str | None, role: str) -> str:
    identity = normalize_identity(raw)
    if not identity:
        raise ValidationError(f"{role} identity is required.")
    return identity


def _ensure_pending(change: KpiFactChange) -> None:
    if change.approval_status != ApprovalStatus.PENDING:
        raise InvalidStateError(
            f"Change request {change.id} is {change.approval_status}, not pending."
        )
