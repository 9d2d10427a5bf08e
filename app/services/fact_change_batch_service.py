"""
app/services/fact_change_batch_service.py

Batch workflow: several change requests for one plan-year, submitted and
reviewed as a single unit.

Approving or rejecting a batch cascades onto every child that is still
pending, inside one transaction, and sends the submitter one consolidated
notification instead of one per child. Children that were already decided
individually are left alone.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.logging_utils import log_event
from app.services.access import ReviewPolicy, normalize_identity
from app.services.fact_change_service import (
    FactChangeService,
    is_self_approving,
    require_reason,
)
from app.services.notifications import (
    Notification,
    NotificationDispatcher,
    batch_approved,
    batch_pending_review,
    batch_rejected,
    deliver,
    get_notification_dispatcher,
)
from db.models.fact import KpiFact
from db.models.fact_change import ApprovalStatus, KpiFactChange
from db.models.fact_change_batch import KpiFactChangeBatch
from db.models.year_plan import KpiYearPlan, PlanFrequency
from db.repositories.fact_change_repository import FactChangeRepository
from db.repositories.fact_repository import FactRepository
from db.repositories.plan_repository import PlanRepository
from db.repositories.types import BatchRow, ProposedValues
from db.session import transaction
from kpi.errors import InvalidStateError, NotFoundError, ValidationError
from kpi.period_clock import Clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchSubmission:
    batch: KpiFactChangeBatch
    changes: list[KpiFactChange]
    skipped_fact_ids: list[uuid.UUID] = field(default_factory=list)

    @property
    def auto_approved(self) -> bool:
        return self.batch.approval_status == ApprovalStatus.APPROVED


@dataclass(frozen=True)
class BatchDecision:
    batch: KpiFactChangeBatch
    affected: int
    """Number of children moved out of pending by this decision."""


def validate_period_range(
    monthly: bool,
    period_min: int | None,
    period_max: int | None,
) -> None:
    """
    Both bounds or neither; ``1 <= min <= max <= 12`` (monthly) or ``4`` (quarterly).
    """
    if period_min is None and period_max is None:
        return
    if period_min is None or period_max is None:
        raise ValidationError("period_min and period_max must be supplied together.")
    upper = 12 if monthly else 4
    if not 1 <= period_min <= period_max <= upper:
        raise ValidationError(
            f"Invalid period range {period_min}..{period_max}; expected 1..{upper}."
        )


class FactChangeBatchService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        change_service: FactChangeService | None = None,
        dispatcher: NotificationDispatcher | None = None,
        review_policy: ReviewPolicy | None = None,
        clock: Clock | None = None,
        inbox_url: str | None = None,
    ) -> None:
        self._session = session
        self._dispatcher = dispatcher or get_notification_dispatcher()
        self._changes_service = change_service or FactChangeService(
            session,
            dispatcher=self._dispatcher,
            review_policy=review_policy,
            clock=clock,
            inbox_url=inbox_url,
        )
        self._clock = self._changes_service.clock
        self._inbox_url = self._changes_service.inbox_url
        self._changes = FactChangeRepository(session)
        self._facts = FactRepository(session)
        self._plans = PlanRepository(session)

    # ------------------------------------------------------------------
    # Create / submit
    # ------------------------------------------------------------------

    async def create_batch(
        self,
        *,
        kpi_id: uuid.UUID,
        plan_id: uuid.UUID,
        year: int,
        monthly: bool,
        period_min: int | None,
        period_max: int | None,
        submitted_by: str,
        created_count: int,
        skipped_count: int,
    ) -> KpiFactChangeBatch:
        """Persist an empty pending batch header."""
        async with transaction(self._session):
            return await self._create_within(
                kpi_id=kpi_id,
                plan_id=plan_id,
                year=year,
                monthly=monthly,
                period_min=period_min,
                period_max=period_max,
                submitted_by=submitted_by,
                created_count=created_count,
                skipped_count=skipped_count,
            )

    async def submit_batch(
        self,
        plan_id: uuid.UUID,
        year: int,
        rows: Sequence[BatchRow],
        submitted_by: str,
    ) -> BatchSubmission:
        """
        Propose values for several facts of one plan-year.

        Rows are skipped when their values are empty, their fact is not an
        active fact of the plan-year, the fact already has a pending change,
        or the fact was already listed earlier in *rows*.

        Raises
        ------
        ValidationError
            When the submitter is blank or every row was skipped.
        NotFoundError
            When the plan does not exist or is inactive.
        """
        submitter = normalize_identity(submitted_by)
        if not submitter:
            raise ValidationError("Submitter identity is required.")

        outbox: list[Notification] = []
        committing = not self._session.in_transaction()
        async with transaction(self._session):
            plan = await self._plans.get_plan(plan_id)
            if plan is None or not plan.is_active:
                raise NotFoundError(f"Year plan {plan_id} not found or inactive.")

            facts = {fact.id: fact for fact in await self._facts.list_plan_year(plan_id, year)}
            accepted: list[tuple[KpiFact, ProposedValues]] = []
            skipped: list[uuid.UUID] = []
            seen: set[uuid.UUID] = set()
            for row in rows:
                fact = facts.get(row.kpi_fact_id)
                values = row.values.normalized()
                if (
                    fact is None
                    or fact.id in seen
                    or values.is_empty()
                    or await self._changes.has_pending(fact.id)
                ):
                    skipped.append(row.kpi_fact_id)
                    continue
                seen.add(fact.id)
                accepted.append((fact, values))

            if not accepted:
                raise ValidationError("Nothing to submit: every row was skipped.")

            monthly = plan.frequency != PlanFrequency.QUARTERLY
            numbers = [
                n
                for n in (_period_number(fact) for fact, _ in accepted)
                if n is not None
            ]
            batch = await self._create_within(
                kpi_id=plan.kpi_id,
                plan_id=plan.id,
                year=year,
                monthly=monthly,
                period_min=min(numbers) if numbers else None,
                period_max=max(numbers) if numbers else None,
                submitted_by=submitter,
                created_count=len(accepted),
                skipped_count=len(skipped),
            )

            changes: list[KpiFactChange] = []
            for fact, values in accepted:
                outcome = await self._changes_service.submit_within(
                    fact.id, values, submitter, batch_id=batch.id
                )
                changes.append(outcome.change)

            label = await self._plans.get_kpi_label(plan.kpi_id)
            if is_self_approving(plan):
                self._stamp(batch, ApprovalStatus.APPROVED, normalize_identity(plan.owner_id))
                await self._session.flush()
            else:
                owner = normalize_identity(plan.owner_id)
                if owner:
                    outbox.append(
                        batch_pending_review(
                            owner,
                            label,
                            submitter,
                            year=year,
                            row_count=len(changes),
                            inbox_url=self._inbox_url,
                        )
                    )
                else:
                    logger.warning("Year plan %s has no owner; nobody to notify.", plan.id)

        log_event(
            logger,
            logging.INFO,
            "fact_change_batch.submitted",
            batch_id=batch.id,
            kpi_year_plan_id=plan_id,
            year=year,
            rows=len(changes),
            skipped=len(skipped),
            status=batch.approval_status,
        )
        await deliver(self._dispatcher, self._session, outbox, committed=committing)
        return BatchSubmission(batch=batch, changes=changes, skipped_fact_ids=skipped)

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    async def approve_batch(self, batch_id: uuid.UUID, reviewed_by: str) -> BatchDecision:
        """
        Approve every still-pending child and the batch itself.

        Any failure while applying a child rolls back the whole batch.
        """
        reviewer = _reviewer(reviewed_by)
        outbox: list[Notification] = []
        committing = not self._session.in_transaction()
        async with transaction(self._session):
            batch, _ = await self._load_for_review(batch_id, reviewer)
            children = await self._changes.list_pending_for_batch(batch.id)
            now = self._clock()
            for child in children:
                await self._changes_service.apply_approval(child, reviewer, now)
            self._stamp(batch, ApprovalStatus.APPROVED, reviewer, reviewed_at=now)
            await self._session.flush()

            label = await self._plans.get_kpi_label(batch.kpi_id)
            outbox.append(
                batch_approved(
                    batch.submitted_by,
                    label,
                    year=batch.year,
                    approved_count=len(children),
                    inbox_url=self._inbox_url,
                )
            )

        log_event(
            logger,
            logging.INFO,
            "fact_change_batch.approved",
            batch_id=batch.id,
            reviewed_by=reviewer,
            children=len(children),
        )
        await deliver(self._dispatcher, self._session, outbox, committed=committing)
        return BatchDecision(batch=batch, affected=len(children))

    async def reject_batch(
        self,
        batch_id: uuid.UUID,
        reviewed_by: str,
        reason: str | None,
    ) -> BatchDecision:
        reason_text = require_reason(reason)
        reviewer = _reviewer(reviewed_by)
        outbox: list[Notification] = []
        committing = not self._session.in_transaction()
        async with transaction(self._session):
            batch, _ = await self._load_for_review(batch_id, reviewer)
            children = await self._changes.list_pending_for_batch(batch.id)
            now = self._clock()
            for child in children:
                await self._changes_service.apply_rejection(child, reviewer, reason_text, now)
            self._stamp(batch, ApprovalStatus.REJECTED, reviewer, reviewed_at=now)
            batch.reject_reason = reason_text
            await self._session.flush()

            label = await self._plans.get_kpi_label(batch.kpi_id)
            outbox.append(
                batch_rejected(
                    batch.submitted_by,
                    label,
                    reason_text,
                    year=batch.year,
                    rejected_count=len(children),
                    inbox_url=self._inbox_url,
                )
            )

        log_event(
            logger,
            logging.INFO,
            "fact_change_batch.rejected",
            batch_id=batch.id,
            reviewed_by=reviewer,
            children=len(children),
        )
        await deliver(self._dispatcher, self._session, outbox, committed=committing)
        return BatchDecision(batch=batch, affected=len(children))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _create_within(
        self,
        *,
        kpi_id: uuid.UUID,
        plan_id: uuid.UUID,
        year: int,
        monthly: bool,
        period_min: int | None,
        period_max: int | None,
        submitted_by: str,
        created_count: int,
        skipped_count: int,
    ) -> KpiFactChangeBatch:
        validate_period_range(monthly, period_min, period_max)
        if created_count < 0 or skipped_count < 0:
            raise ValidationError("Batch row counts must not be negative.")
        submitter = normalize_identity(submitted_by)
        if not submitter:
            raise ValidationError("Submitter identity is required.")

        batch = KpiFactChangeBatch(
            kpi_id=kpi_id,
            kpi_year_plan_id=plan_id,
            year=year,
            frequency=PlanFrequency.MONTHLY if monthly else PlanFrequency.QUARTERLY,
            period_min=period_min,
            period_max=period_max,
            row_count=created_count,
            skipped_count=skipped_count,
            submitted_by=submitter,
            submitted_at=self._clock(),
            approval_status=ApprovalStatus.PENDING,
        )
        await self._changes.add_batch(batch)
        log_event(
            logger,
            logging.INFO,
            "fact_change_batch.created",
            batch_id=batch.id,
            kpi_year_plan_id=plan_id,
            year=year,
            rows=created_count,
            skipped=skipped_count,
        )
        return batch

    async def _load_for_review(
        self,
        batch_id: uuid.UUID,
        reviewer: str,
    ) -> tuple[KpiFactChangeBatch, KpiYearPlan]:
        batch = await self._changes.get_batch(batch_id)
        if batch is None:
            raise NotFoundError(f"Change batch {batch_id} not found.")
        plan = await self._plans.get_plan(batch.kpi_year_plan_id)
        if plan is None:
            raise NotFoundError(f"Year plan {batch.kpi_year_plan_id} not found.")
        self._changes_service.authorize(reviewer, plan)
        if batch.approval_status != ApprovalStatus.PENDING:
            raise InvalidStateError(
                f"Change batch {batch.id} is {batch.approval_status}, not pending."
            )
        return batch, plan

    def _stamp(
        self,
        batch: KpiFactChangeBatch,
        status: str,
        reviewer: str,
        *,
        reviewed_at: datetime | None = None,
    ) -> None:
        batch.approval_status = status
        batch.reviewed_by = reviewer
        batch.reviewed_at = reviewed_at or self._clock()


def _period_number(fact: KpiFact) -> int | None:
    period = fact.period
    if period.month_num is not None:
        return period.month_num
    return period.quarter_num


def _reviewer(raw: str | None) -> str:
    reviewer = normalize_identity(raw)
    if not reviewer:
        raise ValidationError("Reviewer identity is required.")
    return reviewer
