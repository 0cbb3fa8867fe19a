"""Budget creation and derived spend figures.

Everything here is recomputed from the transaction set on every call; no
spent/remaining figure or threshold flag is ever stored. That keeps the
threshold check idempotent and lets the ledger recompute history for any
period window.
"""

from __future__ import annotations

import datetime as dt
import uuid
from collections.abc import Iterable, Sequence
from decimal import Decimal, InvalidOperation

from .errors import ValidationError
from .logging_setup import get_logger
from .models import (
    DEFAULT_NOTIFICATION_THRESHOLD,
    Budget,
    BudgetPeriod,
    BudgetStatus,
    BudgetSummary,
    Transaction,
)
from .periods import PeriodInstance, current_period, instance, period_instances

_logger = get_logger("spaarapp.budgets")

_ZERO = Decimal("0")


def _to_decimal(raw: Decimal | int | str, what: str) -> Decimal:
    if isinstance(raw, float):
        raise ValidationError(f"{what} must be a Decimal, int or string, not float")
    try:
        value = Decimal(str(raw).strip().replace(",", ".")) if isinstance(raw, str) else Decimal(raw)
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValidationError(f"{what} is not a number: {raw!r}") from exc
    if not value.is_finite():
        raise ValidationError(f"{what} must be finite")
    return value


def _to_date(raw: dt.date | str | None, what: str) -> dt.date | None:
    # datetime is a date subclass but must not leak into date comparisons.
    if isinstance(raw, dt.datetime):
        return raw.date()
    if raw is None or isinstance(raw, dt.date):
        return raw
    try:
        return dt.date.fromisoformat(str(raw).strip())
    except ValueError as exc:
        raise ValidationError(f"{what} is not an ISO date (YYYY-MM-DD): {raw!r}") from exc


def create_budget(
    *,
    name: str,
    amount: Decimal | int | str,
    period: BudgetPeriod | str,
    start_date: dt.date | str,
    category_id: str | None = None,
    end_date: dt.date | str | None = None,
    notification_threshold: Decimal | int | str = DEFAULT_NOTIFICATION_THRESHOLD,
    budget_id: str | None = None,
) -> Budget:
    """Build a validated :class:`Budget` from loosely typed input.

    Amounts accept ``"600.00"`` and ``"600,00"``; dates accept ISO strings.
    Floats are rejected so binary rounding never reaches the ledger.

    Raises
    ------
    ValidationError
        For malformed values and every rule :class:`Budget` enforces.
    """

    start = _to_date(start_date, "start_date")
    if start is None:
        raise ValidationError("start_date is required")
    return Budget(
        id=budget_id or str(uuid.uuid4()),
        name=" ".join((name or "").split()) or "Budget",
        amount=_to_decimal(amount, "amount"),
        period=period,  # type: ignore[arg-type]  # coerced by Budget
        start_date=start,
        category_id=category_id or None,
        end_date=_to_date(end_date, "end_date"),
        notification_threshold=_to_decimal(notification_threshold, "notification_threshold"),
    )


def _matches(budget: Budget, tx: Transaction) -> bool:
    return budget.category_id is None or tx.category_id == budget.category_id


def spent_in_window(
    budget: Budget, transactions: Iterable[Transaction], window: PeriodInstance
) -> tuple[Decimal, int]:
    """Sum of ``abs(amount)`` and count of matching debits inside ``window``.

    Credits never count as spend. Overall budgets (no category) count every
    debit, categorized or not.
    """

    total, count = _ZERO, 0
    for tx in transactions:
        if tx.amount < 0 and window.contains(tx.date) and _matches(budget, tx):
            total += -tx.amount
            count += 1
    return total, count


def compute_status(
    budget: Budget, transactions: Iterable[Transaction], *, today: dt.date
) -> BudgetStatus:
    """Status of ``budget`` for the period instance containing ``today``.

    Before ``start_date`` the first instance is reported, inactive. Once the
    current instance starts at or after ``end_date`` the budget is inactive
    and stops rolling forward; both inactive cases report zero spend.
    """

    if today < budget.start_date:
        window = instance(budget.start_date, budget.period, 0)
        return BudgetStatus(budget, window.start, window.end, _ZERO, is_active=False)

    window = current_period(budget.start_date, budget.period, today)
    if budget.end_date is not None and window.start >= budget.end_date:
        return BudgetStatus(budget, window.start, window.end, _ZERO, is_active=False)

    spent, count = spent_in_window(budget, transactions, window)
    return BudgetStatus(budget, window.start, window.end, spent, is_active=True, transaction_count=count)


def compute_statuses(
    budgets: Iterable[Budget], transactions: Iterable[Transaction], *, today: dt.date
) -> list[BudgetStatus]:
    txs = list(transactions)
    out = [compute_status(b, txs, today=today) for b in budgets]
    crossed = [s.budget.id for s in out if s.threshold_crossed]
    if crossed:
        _logger.info("budgets:threshold_crossed count=%d ids=%s", len(crossed), ",".join(crossed))
    return out


def budget_history(
    budget: Budget, transactions: Iterable[Transaction], *, until: dt.date
) -> list[BudgetStatus]:
    """One active status per period instance from ``start_date`` through ``until``."""

    txs = list(transactions)
    out: list[BudgetStatus] = []
    for window in period_instances(budget.start_date, budget.period, until, end_date=budget.end_date):
        spent, count = spent_in_window(budget, txs, window)
        out.append(
            BudgetStatus(budget, window.start, window.end, spent, is_active=True, transaction_count=count)
        )
    return out


def summarize_budgets(statuses: Sequence[BudgetStatus]) -> BudgetSummary:
    """Totals over active budgets; ``total_budgets`` counts all of them."""

    active = [s for s in statuses if s.is_active]
    return BudgetSummary(
        total_budgets=len(statuses),
        active_budgets=len(active),
        total_budgeted=sum((s.budget.amount for s in active), _ZERO),
        total_spent=sum((s.spent for s in active), _ZERO),
        total_remaining=sum((s.remaining for s in active), _ZERO),
        warnings=sum(1 for s in active if s.threshold_crossed),
    )


def safe_to_spend(statuses: Sequence[BudgetStatus]) -> Decimal | None:
    """Overall allowance minus spend across active category budgets, floored at 0.

    Uses the first active overall budget; ``None`` when there is none.
    """

    overall = next((s for s in statuses if s.is_active and s.budget.is_overall), None)
    if overall is None:
        return None
    spent = sum((s.spent for s in statuses if s.is_active and not s.budget.is_overall), _ZERO)
    return max(overall.budget.amount - spent, _ZERO)


__all__ = [
    "budget_history",
    "compute_status",
    "compute_statuses",
    "create_budget",
    "safe_to_spend",
    "spent_in_window",
    "summarize_budgets",
]
