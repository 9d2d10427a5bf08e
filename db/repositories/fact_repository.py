"""
db/repositories/fact_repository.py

Read access to KPI facts and their periods.

All methods run inside the caller's transaction; this repository never
commits or flushes on its own.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from db.models.fact import KpiFact
from db.models.period import Period
from kpi.period_clock import period_number
from kpi.status import NextPeriodValues


class FactRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_fact(
        self,
        fact_id: uuid.UUID,
        *,
        active_only: bool = True,
        with_period: bool = False,
    ) -> KpiFact | None:
        stmt: Select[tuple[KpiFact]] = select(KpiFact).where(KpiFact.id == fact_id)
        if active_only:
            stmt = stmt.where(KpiFact.is_active.is_(True))
        if with_period:
            stmt = stmt.options(joinedload(KpiFact.period))
        return (await self._session.scalars(stmt)).first()

    async def list_plan_year(self, plan_id: uuid.UUID, year: int) -> list[KpiFact]:
        """
        Return the active facts of one plan-year with their periods loaded,
        ordered by period start.
        """
        stmt = (
            select(KpiFact)
            .join(Period, KpiFact.period_id == Period.id)
            .options(joinedload(KpiFact.period))
            .where(
                KpiFact.kpi_year_plan_id == plan_id,
                KpiFact.is_active.is_(True),
                Period.year == year,
            )
            .order_by(Period.start_date, Period.month_num, Period.quarter_num)
        )
        return list((await self._session.scalars(stmt)).all())

    async def get_next_values(
        self,
        plan_id: uuid.UUID,
        year: int,
        period: Period,
    ) -> NextPeriodValues | None:
        """
        Target and forecast of the first active fact in the same plan-year whose
        period has the same granularity and a higher month or quarter number
        than *period*. Year periods have no successor within their year.
        """
        number = period_number(period)
        if number is None:
            return None
        column = Period.month_num if period.month_num is not None else Period.quarter_num

        stmt = (
            select(KpiFact.target_value, KpiFact.forecast_value)
            .join(Period, KpiFact.period_id == Period.id)
            .where(
                KpiFact.kpi_year_plan_id == plan_id,
                KpiFact.is_active.is_(True),
                Period.year == year,
                column > number,
            )
            .order_by(column)
            .limit(1)
        )
        row = (await self._session.execute(stmt)).first()
        if row is None:
            return None
        return NextPeriodValues(target=row.target_value, forecast=row.forecast_value)
