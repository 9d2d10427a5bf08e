"""
Repository for year plans and the KPI labels used in notifications.
"""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from db.models.kpi import Kpi
from db.models.year_plan import KpiYearPlan
from db.repositories.types import KpiLabel


class PlanRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_plan(self, plan_id: uuid.UUID) -> KpiYearPlan | None:
        return await self._session.get(KpiYearPlan, plan_id)

    async def get_kpi_label(self, kpi_id: uuid.UUID) -> KpiLabel:
        kpi = await self._session.get(Kpi, kpi_id)
        if kpi is None:
            return KpiLabel.unknown()
        return KpiLabel(code=kpi.code, name=kpi.name)
