"""
kpi/direction.py

Explicit trend direction of a KPI year plan.

Every plan must declare whether higher (``+1``) or lower (``-1``) values are
better. There is no inference from historical data: anything else is a
configuration error.
"""

from __future__ import annotations

from enum import IntEnum

from kpi.errors import InvalidConfigurationError


class TrendDirection(IntEnum):
    ASCENDING = 1
    DESCENDING = -1


def resolve_direction(target_direction: int | None) -> TrendDirection:
    """
    Map a plan's stored ``target_direction`` onto :class:`TrendDirection`.

    Raises
    ------
    InvalidConfigurationError
        When the value is missing or not exactly ``1`` / ``-1``.
    """
    if target_direction == 1:
        return TrendDirection.ASCENDING
    if target_direction == -1:
        return TrendDirection.DESCENDING
    raise InvalidConfigurationError(
        f"Year plan target direction must be 1 or -1, got {target_direction!r}."
    )
