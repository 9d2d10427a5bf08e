"""
Repository for change request and change batch persistence.

The caller controls the transaction; ``add_*`` methods flush so that
generated keys and the pending-change unique index are checked immediately.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models.fact import KpiFact
from db.models.fact_change import ApprovalStatus, KpiFactChange
from db.models.fact_change_batch import KpiFactChangeBatch
from db.models.year_plan import KpiYearPlan


class FactChangeRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Change requests
    # ------------------------------------------------------------------

    async def has_pending(self, fact_id: uuid.UUID) -> bool:
        stmt = (
            select(KpiFactChange.id)
            .where(
                KpiFactChange.kpi_fact_id == fact_id,
                KpiFactChange.approval_status == ApprovalStatus.PENDING,
            )
            .limit(1)
        )
        return (await self._session.scalars(stmt)).first() is not None

    async def add_change(self, change: KpiFactChange) -> KpiFactChange:
        self._session.add(change)
        await self._session.flush()
        return change

    async def get_change(self, change_id: uuid.UUID) -> KpiFactChange | None:
        return await self._session.get(KpiFactChange, change_id)

    async def list_pending_for_batch(self, batch_id: uuid.UUID) -> list[KpiFactChange]:
        stmt = (
            select(KpiFactChange)
            .where(
                KpiFactChange.batch_id == batch_id,
                KpiFactChange.approval_status == ApprovalStatus.PENDING,
            )
            .order_by(KpiFactChange.submitted_at, KpiFactChange.id)
        )
        return list((await self._session.scalars(stmt)).all())

    async def count_pending(self, *, owner_id: str | None = None) -> int:
        """Pending changes overall, or only those on plans owned by *owner_id*."""
        stmt = select(func.count(KpiFactChange.id)).where(
            KpiFactChange.approval_status == ApprovalStatus.PENDING
        )
        if owner_id is not None:
            stmt = _scope_to_owner(stmt, owner_id)
        return int((await self._session.scalar(stmt)) or 0)

    async def list_changes(
        self,
        *,
        status: str | None = ApprovalStatus.PENDING,
        owner_id: str | None = None,
        limit: int = 100,
    ) -> list[KpiFactChange]:
        stmt: Select[tuple[KpiFactChange]] = select(KpiFactChange)
        if status:
            stmt = stmt.where(KpiFactChange.approval_status == status)
        if owner_id is not None:
            stmt = _scope_to_owner(stmt, owner_id)
        stmt = stmt.order_by(KpiFactChange.submitted_at.desc()).limit(max(1, limit))
        return list((await self._session.scalars(stmt)).all())

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def add_batch(self, batch: KpiFactChangeBatch) -> KpiFactChangeBatch:
        self._session.add(batch)
        await self._session.flush()
        return batch

    async def get_batch(self, batch_id: uuid.UUID) -> KpiFactChangeBatch | None:
        return await self._session.get(KpiFactChangeBatch, batch_id)


def _scope_to_owner(stmt: Select, owner_id: str) -> Select:
    return (
        stmt.join(KpiFact, KpiFactChange.kpi_fact_id == KpiFact.id)
        .join(KpiYearPlan, KpiFact.kpi_year_plan_id == KpiYearPlan.id)
        .where(func.lower(KpiYearPlan.owner_id) == owner_id.lower())
    )
