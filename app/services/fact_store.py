"""
Write access to KPI fact values.

Applying accepted values always re-runs the status engine for the fact and
then for its whole plan-year, since neighbouring periods look ahead at it.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.status_service import KPIStatusService
from db.models.fact import KpiFact
from db.models.period import Period
from db.repositories.fact_repository import FactRepository
from db.repositories.types import ProposedValues
from kpi.errors import NotFoundError


class FactStore:
    def __init__(self, session: AsyncSession, status_service: KPIStatusService) -> None:
        self._session = session
        self._facts = FactRepository(session)
        self._status = status_service

    async def get_active_fact(self, fact_id: uuid.UUID) -> KpiFact:
        fact = await self._facts.get_fact(fact_id)
        if fact is None:
            raise NotFoundError(f"KPI fact {fact_id} not found or inactive.")
        return fact

    async def get_fact(self, fact_id: uuid.UUID) -> KpiFact:
        """Like :meth:`get_active_fact` but also returns soft-deleted facts."""
        fact = await self._facts.get_fact(fact_id, active_only=False)
        if fact is None:
            raise NotFoundError(f"KPI fact {fact_id} not found.")
        return fact

    def apply(self, fact: KpiFact, values: ProposedValues, *, changed_by: str) -> None:
        """Copy the supplied values onto *fact*; ``None`` fields keep the stored value."""
        values = values.normalized()
        if values.actual is not None:
            fact.actual_value = values.actual
        if values.target is not None:
            fact.target_value = values.target
        if values.forecast is not None:
            fact.forecast_value = values.forecast
        if values.status_code is not None:
            fact.status_code = values.status_code
        fact.last_changed_by = changed_by

    async def recompute(self, fact: KpiFact) -> str:
        """
        Flush pending value changes, then re-evaluate the fact and its plan-year.

        Returns the fact's status after the plan-year pass.
        """
        await self._session.flush()
        await self._status.compute_and_set(fact.id)
        year = await self._period_year(fact.period_id)
        await self._status.recompute_plan_year(fact.kpi_year_plan_id, year)
        return fact.status_code or ""

    async def _period_year(self, period_id: uuid.UUID) -> int:
        year = await self._session.scalar(select(Period.year).where(Period.id == period_id))
        if year is None:
            raise NotFoundError(f"Period {period_id} not found.")
        return year
