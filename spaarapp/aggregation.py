"""Read-side statistics over the ledger for dashboards and insights.

Nothing here mutates transactions. Expense figures are positive magnitudes
(sum of ``abs(amount)`` over debits).
"""

from __future__ import annotations

import datetime as dt
from collections import defaultdict
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal

from .categorization import FALLBACK_CATEGORY_ID
from .models import (
    Category,
    CategorySpending,
    DateRange,
    SpendingAnalysis,
    Transaction,
    TrendDirection,
)

_ZERO = Decimal("0")
_CENT = Decimal("0.01")


def classify_trend(current: Decimal, previous: Decimal, *, tolerance: float) -> TrendDirection:
    """Compare expense against the previous period within a ±tolerance band.

    A previous period without spend counts as ``increasing`` once there is any
    current spend, and ``stable`` otherwise.
    """

    if previous == _ZERO:
        return TrendDirection.INCREASING if current > _ZERO else TrendDirection.STABLE
    change = (current - previous) / previous
    band = Decimal(str(tolerance))
    if change > band:
        return TrendDirection.INCREASING
    if change < -band:
        return TrendDirection.DECREASING
    return TrendDirection.STABLE


def _expense_in(transactions: Iterable[Transaction], rng: DateRange) -> Decimal:
    return sum((-t.amount for t in transactions if t.amount < 0 and rng.contains(t.date)), _ZERO)


def analyze_spending(
    transactions: Iterable[Transaction],
    date_range: DateRange,
    *,
    categories: Iterable[Category] | Mapping[str, Category] = (),
    tolerance: float = 0.03,
    top_n: int = 10,
) -> SpendingAnalysis:
    """Totals, top spending categories and trend for ``date_range`` (inclusive).

    Parameters
    ----------
    categories:
        Used only to resolve display names; unknown ids fall back to the id.
        Uncategorized debits are reported under the fallback category.
    tolerance:
        Relative change treated as ``stable`` (0.03 = ±3%).
    top_n:
        Number of categories kept, largest spend first (ties by id).
    """

    if tolerance < 0:
        raise ValueError("tolerance must be non-negative")
    if top_n < 0:
        raise ValueError("top_n must be non-negative")

    names = (
        {cid: c.name for cid, c in categories.items()}
        if isinstance(categories, Mapping)
        else {c.id: c.name for c in categories}
    )
    txs = list(transactions)

    income, expense = _ZERO, _ZERO
    per_cat: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    per_count: dict[str, int] = defaultdict(int)
    for t in txs:
        if not date_range.contains(t.date):
            continue
        if t.amount > 0:
            income += t.amount
        elif t.amount < 0:
            expense += -t.amount
            cid = t.category_id or FALLBACK_CATEGORY_ID
            per_cat[cid] += -t.amount
            per_count[cid] += 1

    ranked = sorted(per_cat.items(), key=lambda kv: (-kv[1], kv[0]))[:top_n]
    top = tuple(
        CategorySpending(
            category_id=cid,
            category_name=names.get(cid, cid),
            amount=amount,
            transaction_count=per_count[cid],
            percentage=float(amount / expense * 100) if expense > 0 else 0.0,
        )
        for cid, amount in ranked
    )

    previous = _expense_in(txs, date_range.previous())
    return SpendingAnalysis(
        period_start=date_range.start,
        period_end=date_range.end,
        total_income=income,
        total_expense=expense,
        net=income - expense,
        average_daily_spending=(expense / date_range.days).quantize(_CENT, rounding=ROUND_HALF_UP),
        previous_expense=previous,
        trend=classify_trend(expense, previous, tolerance=tolerance),
        top_categories=top,
    )


def monthly_totals(transactions: Iterable[Transaction]) -> list[tuple[str, Decimal, Decimal]]:
    """``(YYYY-MM, income, expense)`` per calendar month, oldest first."""

    buckets: dict[str, list[Decimal]] = defaultdict(lambda: [_ZERO, _ZERO])
    for t in transactions:
        key = f"{t.date.year:04d}-{t.date.month:02d}"
        if t.amount > 0:
            buckets[key][0] += t.amount
        else:
            buckets[key][1] += -t.amount
    return [(k, v[0], v[1]) for k, v in sorted(buckets.items())]


def month_range(year: int, month: int) -> DateRange:
    """The inclusive range covering one calendar month."""

    start = dt.date(year, month, 1)
    nxt = dt.date(year + month // 12, month % 12 + 1, 1)
    return DateRange(start, nxt - dt.timedelta(days=1))


__all__ = [
    "analyze_spending",
    "classify_trend",
    "month_range",
    "monthly_totals",
]
