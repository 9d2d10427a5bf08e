"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.fact import KpiFact
from db.models.fact_change import ApprovalStatus, KpiFactChange
from db.models.fact_change_batch import KpiFactChangeBatch
from db.models.kpi import Kpi
from db.models.period import Period
from db.models.year_plan import KpiYearPlan, PlanFrequency

__all__ = [
    "ApprovalStatus",
    "Kpi",
    "KpiFact",
    "KpiFactChange",
    "KpiFactChangeBatch",
    "KpiYearPlan",
    "Period",
    "PlanFrequency",
]
