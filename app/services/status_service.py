"""
app/services/status_service.py

Persists status verdicts for KPI facts.

The service loads a fact, its period, the following same-granularity fact of
the plan-year and the plan direction, hands them to
:class:`kpi.status.StatusEvaluator`, and writes the verdict back only when it
differs from the stored code. It never commits; callers run it inside their
own unit of work.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import WorkflowSettings, get_workflow_settings
from app.logging_utils import log_event
from db.models.fact import KpiFact
from db.repositories.fact_repository import FactRepository
from db.repositories.plan_repository import PlanRepository
from kpi.direction import TrendDirection, resolve_direction
from kpi.errors import NotFoundError
from kpi.period_clock import Clock, granularity_of, is_due, period_number, utc_now
from kpi.status import NextPeriodValues, StatusEvaluator, StatusInput, status_differs

logger = logging.getLogger(__name__)


class KPIStatusService:
    """
    Usage::

        service = KPIStatusService(session)
        async with session.begin():
            status = await service.compute_and_set(fact_id)
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        clock: Clock | None = None,
        settings: WorkflowSettings | None = None,
    ) -> None:
        settings = settings or get_workflow_settings()
        self._session = session
        self._facts = FactRepository(session)
        self._plans = PlanRepository(session)
        self._evaluator = StatusEvaluator(settings.status_tolerance)
        self._grace_months = settings.due_grace_months
        self._clock = clock or utc_now

    async def resolve_direction(self, plan_id: uuid.UUID) -> TrendDirection:
        """
        Raises NotFoundError for an unknown plan and InvalidConfigurationError
        when its direction is not exactly 1 or -1.
        """
        plan = await self._plans.get_plan(plan_id)
        if plan is None:
            raise NotFoundError(f"Year plan {plan_id} not found.")
        return resolve_direction(plan.target_direction)

    # ------------------------------------------------------------------
    # Single fact
    # ------------------------------------------------------------------

    async def compute_and_set(self, fact_id: uuid.UUID) -> str:
        """
        Evaluate one fact and persist the verdict when it changed.

        Returns the effective status: the new verdict, or the stored code
        when the evaluator gave none, or ``""`` when neither exists.
        """
        fact = await self._facts.get_fact(fact_id, active_only=False, with_period=True)
        if fact is None or fact.period is None:
            raise NotFoundError(f"KPI fact {fact_id} not found or has no period.")

        direction = await self.resolve_direction(fact.kpi_year_plan_id)

        next_values: NextPeriodValues | None = None
        if fact.actual_value is not None:
            next_values = await self._facts.get_next_values(
                fact.kpi_year_plan_id, fact.period.year, fact.period
            )

        verdict = self._evaluate(fact, direction, next_values)
        if verdict is not None and status_differs(verdict, fact.status_code):
            previous = fact.status_code
            fact.status_code = verdict
            await self._session.flush()
            log_event(
                logger,
                logging.INFO,
                "fact_status.changed",
                kpi_fact_id=fact.id,
                previous=previous,
                status=verdict,
            )
            return verdict

        return verdict or fact.status_code or ""

    # ------------------------------------------------------------------
    # Whole plan-year
    # ------------------------------------------------------------------

    async def recompute_plan_year(self, plan_id: uuid.UUID, year: int) -> int:
        """
        Re-evaluate every active fact of one plan-year in period order.

        Returns the number of facts whose status changed.
        """
        facts = await self._facts.list_plan_year(plan_id, year)
        if not facts:
            return 0

        direction = await self.resolve_direction(plan_id)

        changed = 0
        for index, fact in enumerate(facts):
            verdict = self._evaluate(fact, direction, _next_in_year(facts, index))
            if verdict is not None and status_differs(verdict, fact.status_code):
                fact.status_code = verdict
                changed += 1

        if changed:
            await self._session.flush()

        log_event(
            logger,
            logging.INFO,
            "plan_year.recomputed",
            kpi_year_plan_id=plan_id,
            year=year,
            facts=len(facts),
            changed=changed,
        )
        return changed

    def _evaluate(
        self,
        fact: KpiFact,
        direction: TrendDirection,
        next_values: NextPeriodValues | None,
    ) -> str | None:
        due = is_due(fact.period, self._clock(), grace_months=self._grace_months)
        return self._evaluator.evaluate(
            StatusInput(
                actual=fact.actual_value,
                target=fact.target_value,
                forecast=fact.forecast_value,
                is_due=due,
                direction=direction,
                next_values=next_values,
            )
        )


def _next_in_year(facts: Sequence[KpiFact], index: int) -> NextPeriodValues | None:
    """
    Values of the fact whose period is the smallest same-granularity month or
    quarter number above the current one. Matches
    :meth:`FactRepository.get_next_values` regardless of list order.
    """
    current = facts[index].period
    number = period_number(current)
    if number is None:
        return None
    granularity = granularity_of(current)
    following = [
        candidate
        for candidate in facts
        if granularity_of(candidate.period) == granularity
        and period_number(candidate.period) > number
    ]
    if not following:
        return None
    nearest = min(following, key=lambda candidate: period_number(candidate.period))
    return NextPeriodValues(target=nearest.target_value, forecast=nearest.forecast_value)
