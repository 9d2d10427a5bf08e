"""
app/services/access.py

Identity normalization and the single review capability check.

Only a plan's owner, or a configured administrator, may approve or reject
changes proposed for that plan.
"""

from __future__ import annotations

from collections.abc import Iterable
from functools import lru_cache
from typing import Protocol

from app.config import get_workflow_settings
from db.models.year_plan import KpiYearPlan


def normalize_identity(raw: str | None) -> str:
    """
    Reduce ``DOMAIN\\user`` and ``user@domain`` handles to a lower-case ``user``.

    Returns ``""`` for blank input.
    """
    value = (raw or "").strip()
    if not value:
        return ""
    backslash = value.rfind("\\")
    if 0 <= backslash < len(value) - 1:
        value = value[backslash + 1 :]
    at = value.find("@")
    if at > 0:
        value = value[:at]
    return value.strip().lower()


class ReviewPolicy(Protocol):
    def can_review(self, identity: str, plan: KpiYearPlan) -> bool:
        ...


class OwnerOrAdminPolicy:
    """
    Grants review rights to the plan owner and to every configured admin.
    """

    def __init__(self, admin_users: Iterable[str] = ()) -> None:
        self._admins = frozenset(normalize_identity(user) for user in admin_users if user)

    def is_admin(self, identity: str) -> bool:
        return normalize_identity(identity) in self._admins

    def can_review(self, identity: str, plan: KpiYearPlan) -> bool:
        who = normalize_identity(identity)
        if not who:
            return False
        if who in self._admins:
            return True
        return who == normalize_identity(plan.owner_id)


@lru_cache(maxsize=1)
def get_review_policy() -> OwnerOrAdminPolicy:
    return OwnerOrAdminPolicy(get_workflow_settings().admin_users)
