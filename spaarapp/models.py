"""Domain records for the ledger core.

Transactions, categories and budgets are frozen dataclasses: the ledger owns
them and replaces instances instead of mutating them. Amounts are always
``decimal.Decimal``; the sign of a transaction amount encodes direction
(negative = debit/expense, positive = credit/income).

The import result is a pydantic model because it crosses the boundary to the
presentation layer and is serialized as JSON there.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import enum
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .errors import RowError, ValidationError

_ZERO = Decimal("0")
_ONE = Decimal("1")

DEFAULT_NOTIFICATION_THRESHOLD = Decimal("0.8")


class TransactionType(enum.StrEnum):
    DEBIT = "debit"
    CREDIT = "credit"


class BudgetPeriod(enum.StrEnum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class BudgetLevel(enum.StrEnum):
    """Display level of a budget's utilization."""

    OK = "ok"
    CAUTION = "caution"
    WARNING = "warning"
    EXCEEDED = "exceeded"


class TrendDirection(enum.StrEnum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TransactionCandidate:
    """A normalized row that has not been given a ledger identity yet.

    ``external_ref`` carries the bank-assigned reference when the export has
    one; the deduplicator uses it verbatim as the transaction id.
    """

    source_row: int
    date: dt.date
    amount: Decimal
    description: str
    counterparty_account: str | None = None
    counterparty_name: str | None = None
    own_account: str | None = None
    external_ref: str | None = None
    kind: str | None = None
    notes: str | None = None
    tags: tuple[str, ...] = ()
    is_recurring: bool = False
    recurring_frequency: str | None = None

    @property
    def transaction_type(self) -> TransactionType:
        return TransactionType.DEBIT if self.amount < 0 else TransactionType.CREDIT


@dataclass(frozen=True, slots=True)
class Transaction:
    """The ledger's unit of truth.

    ``id``, ``date`` and ``amount`` never change after creation. The category
    can be replaced with :meth:`with_category`; a manual assignment clears the
    confidence (``None``).
    """

    id: str
    date: dt.date
    amount: Decimal
    description: str
    counterparty_account: str | None = None
    counterparty_name: str | None = None
    category_id: str | None = None
    category_confidence: float | None = None
    own_account: str | None = None
    kind: str | None = None
    notes: str | None = None
    tags: tuple[str, ...] = ()
    is_recurring: bool = False
    recurring_frequency: str | None = None
    source_row: int | None = None

    @property
    def transaction_type(self) -> TransactionType:
        return TransactionType.DEBIT if self.amount < 0 else TransactionType.CREDIT

    @property
    def is_debit(self) -> bool:
        return self.amount < 0

    def with_category(
        self, category_id: str | None, *, confidence: float | None = None
    ) -> Transaction:
        if confidence is not None and not 0.0 <= confidence <= 1.0:
            raise ValidationError("category_confidence must be within [0, 1]")
        return dataclasses.replace(
            self, category_id=category_id, category_confidence=confidence
        )


type Transactions = Iterable[Transaction]


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Category:
    """A ledger category with case-insensitive match keywords.

    ``budget_share`` is a percentage of the total budget and purely
    informational. ``is_system`` categories ship with the application and
    cannot be deleted.
    """

    id: str
    name: str
    parent_id: str | None = None
    keywords: tuple[str, ...] = ()
    budget_share: Decimal | None = None
    is_system: bool = False
    sort_order: int | None = None

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValidationError("Category.id must be non-empty")
        if not self.name or not self.name.strip():
            raise ValidationError("Category.name must be non-empty")
        if self.parent_id == self.id:
            raise ValidationError(f"Category {self.id!r} cannot be its own parent")
        if self.budget_share is not None and not _ZERO <= self.budget_share <= Decimal("100"):
            raise ValidationError("Category.budget_share must be a percentage in [0, 100]")
        # Keywords are stored lower-cased, trimmed and de-duplicated in order.
        seen: list[str] = []
        for kw in self.keywords:
            k = " ".join(str(kw).split()).lower()
            if k and k not in seen:
                seen.append(k)
        object.__setattr__(self, "keywords", tuple(seen))


# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Budget:
    """A spending allowance per category (or overall when ``category_id`` is None).

    Validation happens at construction and raises
    :class:`~spaarapp.errors.ValidationError`:

    - ``amount`` must be a positive ``Decimal``;
    - ``notification_threshold`` must be within ``(0, 1]``;
    - ``end_date``, when set, must fall after ``start_date``.

    ``spent`` and ``remaining`` are never stored here; they are derived per
    period instance by :mod:`spaarapp.budgets`.
    """

    id: str
    name: str
    amount: Decimal
    period: BudgetPeriod
    start_date: dt.date
    category_id: str | None = None
    end_date: dt.date | None = None
    notification_threshold: Decimal = DEFAULT_NOTIFICATION_THRESHOLD

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValidationError("Budget.id must be non-empty")
        if not isinstance(self.amount, Decimal) or not self.amount.is_finite():
            raise ValidationError("Budget.amount must be a finite Decimal")
        if self.amount <= _ZERO:
            raise ValidationError(f"Budget.amount must be positive, got {self.amount}")
        try:
            object.__setattr__(self, "period", BudgetPeriod(self.period))
        except ValueError as exc:
            raise ValidationError(f"Unsupported budget period: {self.period!r}") from exc
        if not isinstance(self.start_date, dt.date):
            raise ValidationError("Budget.start_date must be a date")
        if self.end_date is not None:
            if not isinstance(self.end_date, dt.date):
                raise ValidationError("Budget.end_date must be a date")
            if self.end_date <= self.start_date:
                raise ValidationError("Budget.end_date must be after start_date")
        t = self.notification_threshold
        if not isinstance(t, Decimal) or not (_ZERO < t <= _ONE):
            raise ValidationError("Budget.notification_threshold must be within (0, 1]")

    @property
    def is_overall(self) -> bool:
        return self.category_id is None


@dataclass(frozen=True, slots=True)
class BudgetStatus:
    """Derived figures of a budget for one period instance.

    ``remaining`` is always ``amount - spent`` for active budgets. Inactive
    budgets (ended, or not yet started) report zero for both.
    """

    budget: Budget
    period_start: dt.date
    period_end: dt.date
    spent: Decimal
    is_active: bool
    transaction_count: int = 0

    @property
    def remaining(self) -> Decimal:
        if not self.is_active:
            return _ZERO
        return self.budget.amount - self.spent

    @property
    def ratio(self) -> Decimal:
        return self.spent / self.budget.amount

    @property
    def threshold_crossed(self) -> bool:
        return self.is_active and self.ratio >= self.budget.notification_threshold

    @property
    def utilization(self) -> float:
        """Percentage of the allowance used, capped at 100 for display."""

        return min(float(self.ratio * 100), 100.0)

    @property
    def level(self) -> BudgetLevel:
        if not self.is_active:
            return BudgetLevel.OK
        r = self.ratio
        if r >= _ONE:
            return BudgetLevel.EXCEEDED
        if r >= self.budget.notification_threshold:
            return BudgetLevel.WARNING
        if r >= Decimal("0.5"):
            return BudgetLevel.CAUTION
        return BudgetLevel.OK

    def to_dict(self) -> dict[str, Any]:
        b = self.budget
        return {
            "id": b.id,
            "name": b.name,
            "category_id": b.category_id,
            "amount": f"{b.amount:.2f}",
            "period": str(b.period),
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "spent": f"{self.spent:.2f}",
            "remaining": f"{self.remaining:.2f}",
            "is_active": self.is_active,
            "threshold_crossed": self.threshold_crossed,
            "utilization": round(self.utilization, 1),
            "level": str(self.level),
            "transaction_count": self.transaction_count,
        }


@dataclass(frozen=True, slots=True)
class BudgetSummary:
    total_budgets: int
    active_budgets: int
    total_budgeted: Decimal
    total_spent: Decimal
    total_remaining: Decimal
    warnings: int


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DateRange:
    """An inclusive calendar date range ``[start, end]``."""

    start: dt.date
    end: dt.date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValidationError("DateRange.end must not precede start")

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, d: dt.date) -> bool:
        return self.start <= d <= self.end

    def previous(self) -> DateRange:
        """The immediately preceding range of equal length."""

        end = self.start - dt.timedelta(days=1)
        return DateRange(end - dt.timedelta(days=self.days - 1), end)


@dataclass(frozen=True, slots=True)
class CategorySpending:
    category_id: str
    category_name: str
    amount: Decimal
    transaction_count: int
    percentage: float


@dataclass(frozen=True, slots=True)
class SpendingAnalysis:
    period_start: dt.date
    period_end: dt.date
    total_income: Decimal
    total_expense: Decimal
    net: Decimal
    average_daily_spending: Decimal
    previous_expense: Decimal
    trend: TrendDirection
    top_categories: tuple[CategorySpending, ...] = field(default_factory=tuple)

    @property
    def savings_rate(self) -> float | None:
        """Net as a percentage of income; ``None`` without income."""

        if self.total_income <= _ZERO:
            return None
        return float(self.net / self.total_income * 100)


# ---------------------------------------------------------------------------
# Import result (presentation boundary)
# ---------------------------------------------------------------------------


class ImportRowError(BaseModel):
    model_config = ConfigDict(frozen=True)

    row: int
    reason: str

    @classmethod
    def from_row_error(cls, err: RowError) -> ImportRowError:
        return cls(row=err.row, reason=err.reason)


class ImportResult(BaseModel):
    """Outcome of an import, keeping three conditions apart.

    - nothing imported (``success`` is False);
    - some rows rejected (``errors`` populated, ``success`` still True);
    - some rows already present (``duplicate_count`` > 0).
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    imported_count: int = 0
    duplicate_count: int = 0
    total_processed: int = 0
    errors: list[ImportRowError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list, exclude=True)

    @classmethod
    def failure(cls, reason: str, *, total_processed: int = 0) -> ImportResult:
        return cls(
            success=False,
            total_processed=total_processed,
            errors=[ImportRowError(row=0, reason=reason)],
        )


__all__ = [
    "DEFAULT_NOTIFICATION_THRESHOLD",
    "TransactionType",
    "BudgetPeriod",
    "BudgetLevel",
    "TrendDirection",
    "TransactionCandidate",
    "Transaction",
    "Transactions",
    "Category",
    "Budget",
    "BudgetStatus",
    "BudgetSummary",
    "DateRange",
    "CategorySpending",
    "SpendingAnalysis",
    "ImportRowError",
    "ImportResult",
]
