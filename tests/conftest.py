"""
tests/conftest.py

Shared fixtures for the workflow tests.

Database-backed tests run under the anyio pytest plugin against an in-memory
SQLite database built from the ORM metadata. Every connection shares one
StaticPool connection, so data written through one session is visible to the
next.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401 registers all ORM models on Base.metadata
from app.services.notifications import Notification, NotificationDispatcher, NotifyResult
from db.base import Base
from db.models import Kpi, KpiFact, KpiFactChange, KpiFactChangeBatch, KpiYearPlan, Period, PlanFrequency

FIXED_NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
"""January to April 2025 are due at this instant; May and later are not."""


# ---------------------------------------------------------------------------
# Notifier doubles
# ---------------------------------------------------------------------------


class RecordingNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self.sent: list[Notification] = []
        self.fail = fail

    async def notify(self, recipient: str, subject: str, body: str) -> NotifyResult:
        if self.fail:
            raise RuntimeError("mail relay unreachable")
        self.sent.append(Notification(recipient, subject, body))
        return NotifyResult(ok=True, message="recorded")

    @property
    def subjects(self) -> list[str]:
        return [item.subject for item in self.sent]


# ---------------------------------------------------------------------------
# Engine / session fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier: RecordingNotifier) -> NotificationDispatcher:
    return NotificationDispatcher(notifier)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


Values = tuple[object, object, object]
"""(actual, target, forecast) for one period; None for missing."""


@dataclass
class SeededPlan:
    kpi_id: object
    plan_id: object
    year: int
    fact_ids: dict[int, object] = field(default_factory=dict)


def _dec(value: object) -> Decimal | None:
    return None if value is None else Decimal(str(value))


def _period_for(year: int, number: int, frequency: str) -> Period:
    if frequency == PlanFrequency.QUARTERLY:
        return Period(
            year=year,
            quarter_num=number,
            start_date=datetime(year, 3 * (number - 1) + 1, 1, tzinfo=timezone.utc),
        )
    return Period(
        year=year,
        month_num=number,
        start_date=datetime(year, number, 1, tzinfo=timezone.utc),
    )


async def seed_plan(
    factory: async_sessionmaker[AsyncSession],
    *,
    year: int = 2025,
    code: str = "REV",
    owner_id: str | None = "alice",
    editor_id: str | None = "bob",
    target_direction: int | None = 1,
    frequency: str = PlanFrequency.MONTHLY,
    numbers: tuple[int, ...] = (1, 2, 3),
    values: dict[int, Values] | None = None,
    statuses: dict[int, str] | None = None,
    inactive: tuple[int, ...] = (),
) -> SeededPlan:
    """
    Create one KPI, its year plan and one fact per period number.

    Years must differ between plans seeded in the same test because period
    rows are shared dimension rows.
    """
    values = values or {}
    statuses = statuses or {}
    async with factory() as session:
        async with session.begin():
            kpi = Kpi(code=code, name=f"{code} name")
            year_period = Period(year=year, start_date=datetime(year, 1, 1, tzinfo=timezone.utc))
            session.add_all([kpi, year_period])
            await session.flush()

            plan = KpiYearPlan(
                kpi_id=kpi.id,
                period_id=year_period.id,
                frequency=frequency,
                target_direction=target_direction,
                owner_id=owner_id,
                editor_id=editor_id,
            )
            session.add(plan)
            await session.flush()

            seeded = SeededPlan(kpi_id=kpi.id, plan_id=plan.id, year=year)
            for number in numbers:
                period = _period_for(year, number, frequency)
                session.add(period)
                await session.flush()

                actual, target, forecast = values.get(number, (None, None, None))
                fact = KpiFact(
                    kpi_id=kpi.id,
                    kpi_year_plan_id=plan.id,
                    period_id=period.id,
                    actual_value=_dec(actual),
                    target_value=_dec(target),
                    forecast_value=_dec(forecast),
                    status_code=statuses.get(number),
                    is_active=number not in inactive,
                )
                session.add(fact)
                await session.flush()
                seeded.fact_ids[number] = fact.id
    return seeded


@pytest.fixture
def seed(session_factory: async_sessionmaker[AsyncSession]):
    async def _seed(**kwargs) -> SeededPlan:
        return await seed_plan(session_factory, **kwargs)

    return _seed


# ---------------------------------------------------------------------------
# Read-back helpers (always on a fresh session)
# ---------------------------------------------------------------------------


@pytest.fixture
def fetch(session_factory: async_sessionmaker[AsyncSession]):
    async def _fetch(model, row_id):
        async with session_factory() as session:
            return await session.get(model, row_id)

    return _fetch


@pytest.fixture
def fetch_changes(session_factory: async_sessionmaker[AsyncSession]):
    async def _fetch_changes(*, batch_id=None, fact_id=None) -> list[KpiFactChange]:
        stmt = select(KpiFactChange).order_by(KpiFactChange.submitted_at, KpiFactChange.id)
        if batch_id is not None:
            stmt = stmt.where(KpiFactChange.batch_id == batch_id)
        if fact_id is not None:
            stmt = stmt.where(KpiFactChange.kpi_fact_id == fact_id)
        async with session_factory() as session:
            return list((await session.scalars(stmt)).all())

    return _fetch_changes


@pytest.fixture
def count_batches(session_factory: async_sessionmaker[AsyncSession]):
    async def _count() -> int:
        async with session_factory() as session:
            return len((await session.scalars(select(KpiFactChangeBatch))).all())

    return _count
