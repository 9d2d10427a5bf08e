"""
kpi/period_clock.py

Reporting deadlines for KPI periods.

A period ends at its explicit ``end_date`` when one is recorded, otherwise at
23:59:59 UTC on the last calendar day of its month, quarter or year. A period
is *due* once one full calendar month has elapsed after that instant; a due
period without an actual value is reported as data missing.
"""

from __future__ import annotations

import calendar
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Protocol

Clock = Callable[[], datetime]

DEFAULT_GRACE_MONTHS = 1


class PeriodLike(Protocol):
    """Anything shaped like a ``periods`` row."""

    year: int
    month_num: int | None
    quarter_num: int | None
    end_date: datetime | None


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def granularity_of(period: PeriodLike) -> str:
    """Return ``"monthly"``, ``"quarterly"`` or ``"yearly"``."""
    if period.month_num is not None:
        return "monthly"
    if period.quarter_num is not None:
        return "quarterly"
    return "yearly"


def period_number(period: PeriodLike) -> int | None:
    """Month or quarter number; ``None`` for a year period."""
    if period.month_num is not None:
        return period.month_num
    return period.quarter_num


def period_end(period: PeriodLike) -> datetime:
    """
    Return the inclusive end instant of *period* as an aware UTC datetime.

    Naive ``end_date`` values are taken to be UTC.
    """
    if period.end_date is not None:
        return _as_utc(period.end_date)

    if period.month_num is not None:
        month = period.month_num
    elif period.quarter_num is not None:
        month = period.quarter_num * 3
    else:
        month = 12

    last_day = calendar.monthrange(period.year, month)[1]
    return datetime(period.year, month, last_day, 23, 59, 59, tzinfo=timezone.utc)


def is_due(
    period: PeriodLike | None,
    now: datetime,
    *,
    grace_months: int = DEFAULT_GRACE_MONTHS,
) -> bool:
    """
    Return ``True`` once *now* is at or past the period end plus the grace window.

    A missing period is never due.
    """
    if period is None:
        return False
    deadline = add_months(period_end(period), grace_months)
    return _as_utc(now) >= deadline


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
