"""
kpi/status.py

Deterministic KPI status evaluator.

The evaluator works on pre-fetched values only. The caller is responsible
for loading the current fact, the next same-granularity fact of the same
plan-year and the plan direction before invoking it.

Decision rules
--------------
Same period (forecast is never compared against the actual)::

    no actual            → DATA_MISSING when due, otherwise no verdict
    actual meets target  → OK
    otherwise            → NEEDS_ATTENTION candidate

Look-ahead, only for a NEEDS_ATTENTION candidate::

    no next period                      → NEEDS_ATTENTION
    next target missing                 → DATA_MISSING
    next forecast meets next target     → CATCHING_UP
    otherwise                           → NEEDS_ATTENTION

"Meets" compares with a tolerance: ascending ``lhs + tol >= rhs``,
descending ``lhs - tol <= rhs``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from kpi.direction import TrendDirection
from kpi.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = Decimal("0.0001")


class StatusCode:
    OK = "ok"
    NEEDS_ATTENTION = "needs_attention"
    CATCHING_UP = "catching_up"
    DATA_MISSING = "data_missing"

    ALL = frozenset({OK, NEEDS_ATTENTION, CATCHING_UP, DATA_MISSING})


def parse_status_code(raw: str | None) -> str | None:
    """
    Canonical lower-case status code, or ``None`` for blank input.

    Raises ValidationError for anything outside :attr:`StatusCode.ALL`.
    """
    code = (raw or "").strip().lower()
    if not code:
        return None
    if code not in StatusCode.ALL:
        raise ValidationError(
            f"Unknown status code {raw!r}; expected one of {sorted(StatusCode.ALL)}."
        )
    return code


@dataclass(frozen=True)
class NextPeriodValues:
    """Target and forecast of the following period of the same granularity."""

    target: Decimal | None
    forecast: Decimal | None


@dataclass(frozen=True)
class StatusInput:
    """
    Everything the evaluator needs for one fact.

    ``next_values`` is ``None`` when the fact is the last period of its
    plan-year.
    """

    actual: Decimal | None
    target: Decimal | None
    forecast: Decimal | None
    is_due: bool
    direction: TrendDirection
    next_values: NextPeriodValues | None = None


def meets(
    lhs: Decimal,
    rhs: Decimal,
    direction: TrendDirection,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> bool:
    if direction is TrendDirection.ASCENDING:
        return lhs + tolerance >= rhs
    return lhs - tolerance <= rhs


def status_differs(decided: str, stored: str | None) -> bool:
    """Case-insensitive comparison against the stored status code."""
    return decided.lower() != (stored or "").lower()


class StatusEvaluator:
    """
    Stateless status decision function.

    Usage::

        evaluator = StatusEvaluator()
        verdict = evaluator.evaluate(StatusInput(
            actual=Decimal("5"), target=Decimal("10"), forecast=None,
            is_due=True, direction=TrendDirection.ASCENDING,
            next_values=NextPeriodValues(target=Decimal("8"), forecast=Decimal("9")),
        ))
        # verdict == StatusCode.CATCHING_UP
    """

    def __init__(self, tolerance: Decimal = DEFAULT_TOLERANCE) -> None:
        self._tolerance = tolerance

    def evaluate_same_period(
        self,
        actual: Decimal | None,
        target: Decimal | None,
        is_due: bool,
        direction: TrendDirection,
    ) -> str | None:
        """Actual vs target only. ``None`` means no verdict."""
        if actual is None:
            return StatusCode.DATA_MISSING if is_due else None
        if target is not None and meets(actual, target, direction, self._tolerance):
            return StatusCode.OK
        return StatusCode.NEEDS_ATTENTION

    def evaluate(self, data: StatusInput) -> str | None:
        """
        Return the status verdict for one fact, or ``None`` to leave it unchanged.
        """
        same = self.evaluate_same_period(data.actual, data.target, data.is_due, data.direction)
        if same != StatusCode.NEEDS_ATTENTION:
            return same

        following = data.next_values
        if following is None:
            return StatusCode.NEEDS_ATTENTION
        if following.target is None:
            logger.debug("Next period has no target; reporting data missing.")
            return StatusCode.DATA_MISSING
        if following.forecast is not None and meets(
            following.forecast, following.target, data.direction, self._tolerance
        ):
            return StatusCode.CATCHING_UP
        return StatusCode.NEEDS_ATTENTION
