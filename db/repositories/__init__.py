"""
Repository layer exports.
"""

from db.repositories.fact_change_repository import FactChangeRepository
from db.repositories.fact_repository import FactRepository
from db.repositories.plan_repository import PlanRepository
from db.repositories.types import BatchRow, KpiLabel, ProposedValues

__all__ = [
    "BatchRow",
    "FactChangeRepository",
    "FactRepository",
    "KpiLabel",
    "PlanRepository",
    "ProposedValues",
]
