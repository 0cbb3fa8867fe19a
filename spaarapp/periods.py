"""Budget period arithmetic.

A budget with period ``P`` and ``start_date`` ``s`` is measured against
half-open instances ``[s + k*P, s + (k+1)*P)`` for ``k >= 0``. Weeks are seven
days; months, quarters and years use calendar arithmetic. Every instance
start is computed from ``s`` directly (day clamped to the month's length), so
a budget starting on the 31st measures Jan 31, Feb 29, Mar 31, ... rather
than drifting to the 29th.
"""

from __future__ import annotations

import calendar
import datetime as dt
from dataclasses import dataclass

from .models import BudgetPeriod

_MONTHS_PER_PERIOD: dict[BudgetPeriod, int] = {
    BudgetPeriod.MONTHLY: 1,
    BudgetPeriod.QUARTERLY: 3,
    BudgetPeriod.YEARLY: 12,
}


def add_months(d: dt.date, months: int) -> dt.date:
    """Shift ``d`` by whole months, clamping the day to the target month's length."""

    total = d.year * 12 + (d.month - 1) + months
    year, month0 = divmod(total, 12)
    last_day = calendar.monthrange(year, month0 + 1)[1]
    return dt.date(year, month0 + 1, min(d.day, last_day))


@dataclass(frozen=True, slots=True)
class PeriodInstance:
    """One concrete ``[start, end)`` window of a budget; ``index`` is ``k``."""

    index: int
    start: dt.date
    end: dt.date

    def contains(self, d: dt.date) -> bool:
        return self.start <= d < self.end

    @property
    def last_day(self) -> dt.date:
        return self.end - dt.timedelta(days=1)


def instance_start(start_date: dt.date, period: BudgetPeriod, k: int) -> dt.date:
    if k < 0:
        raise ValueError("period index must be non-negative")
    if period is BudgetPeriod.WEEKLY:
        return start_date + dt.timedelta(weeks=k)
    return add_months(start_date, k * _MONTHS_PER_PERIOD[period])


def instance(start_date: dt.date, period: BudgetPeriod, k: int) -> PeriodInstance:
    return PeriodInstance(
        index=k,
        start=instance_start(start_date, period, k),
        end=instance_start(start_date, period, k + 1),
    )


def instance_index(start_date: dt.date, period: BudgetPeriod, on: dt.date) -> int:
    """Largest ``k >= 0`` whose instance starts on or before ``on`` (0 before the start)."""

    if on <= start_date:
        return 0
    if period is BudgetPeriod.WEEKLY:
        return (on - start_date).days // 7

    step = _MONTHS_PER_PERIOD[period]
    months = (on.year - start_date.year) * 12 + (on.month - start_date.month)
    k = max(months // step, 0)
    # The estimate is off by at most one because of day clamping.
    while k > 0 and instance_start(start_date, period, k) > on:
        k -= 1
    while instance_start(start_date, period, k + 1) <= on:
        k += 1
    return k


def current_period(start_date: dt.date, period: BudgetPeriod, today: dt.date) -> PeriodInstance:
    return instance(start_date, period, instance_index(start_date, period, today))


def period_instances(
    start_date: dt.date,
    period: BudgetPeriod,
    until: dt.date,
    *,
    end_date: dt.date | None = None,
) -> list[PeriodInstance]:
    """All instances starting on or before ``until`` (and before ``end_date``)."""

    out: list[PeriodInstance] = []
    k = 0
    while True:
        inst = instance(start_date, period, k)
        if inst.start > until or (end_date is not None and inst.start >= end_date):
            return out
        out.append(inst)
        k += 1


__all__ = [
    "PeriodInstance",
    "add_months",
    "current_period",
    "instance",
    "instance_index",
    "instance_start",
    "period_instances",
]
