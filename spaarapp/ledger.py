"""Ledger façade: the import pipeline plus budget and analysis queries.

Import flow::

    raw text → normalize → deduplicate → categorize → one atomic append

The dedup check and the append form a check-then-act sequence, so imports
(and every other write) are serialized with a single-writer lock. Reads do
not take the lock; the store guarantees they observe either the state before
a write or after it. Budget figures are never stored: each query recomputes
them from the current transaction set.
"""

from __future__ import annotations

import datetime as dt
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from decimal import Decimal

from .aggregation import analyze_spending, monthly_totals
from .budgets import (
    budget_history,
    compute_statuses,
    create_budget,
    safe_to_spend,
    summarize_budgets,
)
from .categories import build_category_forest, normalize_name, slugify, validate_name
from .categorization import (
    FALLBACK_CATEGORY_ID,
    build_rules,
    categorize,
    default_categories,
)
from .config import ImportSchema, Settings, rabobank_schema
from .errors import ConsistencyError, NotFoundError, ParseError, ValidationError
from .fingerprint import IdentifiedCandidate, deduplicate
from .logging_setup import get_logger
from .models import (
    Budget,
    BudgetPeriod,
    BudgetStatus,
    BudgetSummary,
    Category,
    DateRange,
    ImportResult,
    ImportRowError,
    SpendingAnalysis,
    Transaction,
)
from .normalizers import ProgressFn, normalize
from .store import InMemoryStore, LedgerStore

_logger = get_logger("spaarapp.ledger")

# Marks an omitted keyword argument where None is a meaningful value.
_UNCHANGED = object()


def _to_transaction(item: IdentifiedCandidate, category_id: str, confidence: float) -> Transaction:
    c = item.candidate
    return Transaction(
        id=item.id,
        date=c.date,
        amount=c.amount,
        description=c.description,
        counterparty_account=c.counterparty_account,
        counterparty_name=c.counterparty_name,
        category_id=category_id,
        category_confidence=confidence,
        own_account=c.own_account,
        kind=c.kind,
        notes=c.notes,
        tags=c.tags,
        is_recurring=c.is_recurring,
        recurring_frequency=c.recurring_frequency,
        source_row=c.source_row,
    )


class Ledger:
    """Owns the transactions, budgets and categories of one store.

    Parameters
    ----------
    store:
        Persistence collaborator; defaults to a fresh :class:`InMemoryStore`.
    schema:
        Default import schema (the Dutch bank export when omitted).
    settings:
        Runtime settings (trend tolerance, import workers).
    clock:
        Returns "today" for current-period budget figures.
    seed_defaults:
        Seed the default category set into an empty store, or into one that
        only holds the keywordless system categories of a fresh migration.
        The fallback category is always ensured.
    """

    def __init__(
        self,
        store: LedgerStore | None = None,
        *,
        schema: ImportSchema | None = None,
        settings: Settings | None = None,
        clock: Callable[[], dt.date] = dt.date.today,
        seed_defaults: bool = True,
    ) -> None:
        self._store: LedgerStore = store if store is not None else InMemoryStore()
        self._schema = schema or rabobank_schema()
        self._settings = settings or Settings()
        self._clock = clock
        self._write_lock = threading.Lock()

        existing = self._store.load_categories()
        # An empty store, or one holding only the keywordless system rows a
        # fresh migration inserts, has never been seeded.
        if seed_defaults and all(c.is_system and not c.keywords for c in existing):
            added = seed_categories(self._store)
            if added:
                _logger.info("ledger:categories_seeded saved=%d", added)
        elif not any(c.id == FALLBACK_CATEGORY_ID for c in existing):
            self._store.save_category(
                Category(id=FALLBACK_CATEGORY_ID, name="Overig", is_system=True)
            )

    @property
    def store(self) -> LedgerStore:
        return self._store

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_file(
        self,
        raw_text: str | bytes,
        schema: ImportSchema | None = None,
        *,
        on_progress: ProgressFn | None = None,
    ) -> ImportResult:
        """Import a bank export; never raises for bad input.

        File-level failures and rejected appends come back as
        ``ImportResult(success=False, ...)``; row-level problems are listed in
        ``errors`` of an otherwise successful result.
        """

        schema = schema or self._schema
        try:
            batch = normalize(
                raw_text,
                schema,
                workers=self._settings.import_workers,
                on_progress=on_progress,
            )
        except ParseError as exc:
            _logger.warning("import:parse_failed reason=%s rows=%d", exc, exc.total_rows)
            result = ImportResult.failure(str(exc), total_processed=exc.total_rows)
            result.errors.extend(ImportRowError.from_row_error(e) for e in exc.row_errors)
            return result

        row_errors = [ImportRowError.from_row_error(e) for e in batch.errors]
        with self._write_lock:
            existing = {t.id for t in self._store.load_all_transactions()}
            dedup = deduplicate(batch.candidates, existing)
            rules = build_rules(self._store.load_categories())
            new_txs = []
            for item in dedup.accepted:
                assignment = categorize(item.candidate, rules, fallback_id=FALLBACK_CATEGORY_ID)
                new_txs.append(_to_transaction(item, assignment.category_id, assignment.confidence))
            try:
                self._store.append_transactions(new_txs)
            except ConsistencyError as exc:
                _logger.error("import:rolled_back reason=%s", exc)
                return ImportResult(
                    success=False,
                    total_processed=batch.total_rows,
                    duplicate_count=dedup.duplicate_count,
                    errors=[ImportRowError(row=0, reason=str(exc)), *row_errors],
                    warnings=list(batch.warnings),
                )

        _logger.info(
            "import:commit imported=%d duplicates=%d rejected=%d total=%d",
            len(new_txs),
            dedup.duplicate_count,
            len(row_errors),
            batch.total_rows,
        )
        return ImportResult(
            success=True,
            imported_count=len(new_txs),
            duplicate_count=dedup.duplicate_count,
            total_processed=batch.total_rows,
            errors=row_errors,
            warnings=list(batch.warnings),
            transactions=new_txs,
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def transactions(self) -> list[Transaction]:
        return self._store.load_all_transactions()

    def remove_transaction(self, transaction_id: str) -> None:
        with self._write_lock:
            self._store.delete_transaction(transaction_id)
        _logger.info("ledger:transaction_removed id=%s", transaction_id)

    def set_transaction_category(self, transaction_id: str, category_id: str) -> Transaction:
        """Manually assign a category; the confidence is cleared."""

        with self._write_lock:
            self._require_category(category_id)
            return self._store.update_transaction_category(transaction_id, category_id, None)

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    def budgets(self) -> list[Budget]:
        return self._store.load_budgets()

    def add_budget(
        self,
        *,
        name: str,
        amount: Decimal | int | str,
        period: BudgetPeriod | str = BudgetPeriod.MONTHLY,
        start_date: dt.date | str | None = None,
        category_id: str | None = None,
        end_date: dt.date | str | None = None,
        notification_threshold: Decimal | int | str = Decimal("0.8"),
        budget_id: str | None = None,
    ) -> Budget:
        budget = create_budget(
            name=name,
            amount=amount,
            period=period,
            start_date=start_date if start_date is not None else self._clock(),
            category_id=category_id,
            end_date=end_date,
            notification_threshold=notification_threshold,
            budget_id=budget_id,
        )
        with self._write_lock:
            if budget.category_id is not None:
                self._require_category(budget.category_id)
            self._store.save_budget(budget)
        _logger.info(
            "ledger:budget_saved id=%s category=%s amount=%s period=%s",
            budget.id,
            budget.category_id or "-",
            budget.amount,
            budget.period,
        )
        return budget

    def remove_budget(self, budget_id: str) -> None:
        with self._write_lock:
            self._store.delete_budget(budget_id)

    def get_budget_status(self, *, today: dt.date | None = None) -> list[BudgetStatus]:
        return compute_statuses(
            self._store.load_budgets(),
            self._store.load_all_transactions(),
            today=today or self._clock(),
        )

    def budget_summary(self, *, today: dt.date | None = None) -> BudgetSummary:
        return summarize_budgets(self.get_budget_status(today=today))

    def safe_to_spend(self, *, today: dt.date | None = None) -> Decimal | None:
        return safe_to_spend(self.get_budget_status(today=today))

    def budget_history(self, budget_id: str, *, until: dt.date | None = None) -> list[BudgetStatus]:
        budget = next((b for b in self._store.load_budgets() if b.id == budget_id), None)
        if budget is None:
            raise NotFoundError(f"budget {budget_id!r} not found")
        return budget_history(budget, self._store.load_all_transactions(), until=until or self._clock())

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def get_spending_analysis(self, date_range: DateRange, *, top_n: int = 10) -> SpendingAnalysis:
        return analyze_spending(
            self._store.load_all_transactions(),
            date_range,
            categories=self._store.load_categories(),
            tolerance=self._settings.trend_tolerance,
            top_n=top_n,
        )

    def monthly_totals(self) -> list[tuple[str, Decimal, Decimal]]:
        return monthly_totals(self._store.load_all_transactions())

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def categories(self) -> list[Category]:
        return self._store.load_categories()

    def add_category(
        self,
        name: str,
        *,
        parent_id: str | None = None,
        keywords: Iterable[str] = (),
        budget_share: Decimal | None = None,
        category_id: str | None = None,
    ) -> Category:
        """Create a user category; the forest is validated before saving."""

        check = validate_name(name)
        if not check.ok:
            raise ValidationError(f"Invalid category name {name!r}: {check.reason}")
        with self._write_lock:
            existing = self._store.load_categories()
            category = Category(
                id=category_id or slugify(name),
                name=normalize_name(name),
                parent_id=parent_id,
                keywords=tuple(keywords),
                budget_share=budget_share,
                sort_order=len(existing),
            )
            build_category_forest([*existing, category])
            self._store.save_category(category)
        _logger.info("ledger:category_added id=%s parent=%s", category.id, parent_id or "-")
        return category

    def update_category(
        self,
        category_id: str,
        *,
        name: str | None = None,
        keywords: Iterable[str] | None = None,
        parent_id: str | None | object = _UNCHANGED,
        budget_share: Decimal | None | object = _UNCHANGED,
    ) -> Category:
        """Edit a category in place; omitted fields keep their value.

        Pass ``parent_id=None`` to move a category to the top level. The id
        and the system flag never change. Later imports use the new keywords;
        already stored transactions keep their category.
        """

        if name is not None:
            check = validate_name(name)
            if not check.ok:
                raise ValidationError(f"Invalid category name {name!r}: {check.reason}")
        with self._write_lock:
            current = self._require_category(category_id)
            changes: dict[str, object] = {}
            if name is not None:
                changes["name"] = normalize_name(name)
            if keywords is not None:
                changes["keywords"] = tuple(keywords)
            if parent_id is not _UNCHANGED:
                changes["parent_id"] = parent_id
            if budget_share is not _UNCHANGED:
                changes["budget_share"] = budget_share
            updated = replace(current, **changes)
            others = [c for c in self._store.load_categories() if c.id != category_id]
            build_category_forest([*others, updated])
            self._store.save_category(updated)
        _logger.info(
            "ledger:category_updated id=%s fields=%s", category_id, ",".join(sorted(changes)) or "-"
        )
        return updated

    def remove_category(self, category_id: str) -> None:
        """Delete a user category that nothing references.

        System categories, categories with child categories, and categories
        still used by transactions or budgets are refused with
        ``ValidationError``.
        """

        with self._write_lock:
            cat = self._require_category(category_id)
            if cat.is_system:
                raise ValidationError(f"System category {category_id!r} cannot be deleted")
            if any(c.parent_id == category_id for c in self._store.load_categories()):
                raise ValidationError(f"Category {category_id!r} still has subcategories")
            if any(t.category_id == category_id for t in self._store.load_all_transactions()):
                raise ValidationError(f"Category {category_id!r} is used by transactions")
            if any(b.category_id == category_id for b in self._store.load_budgets()):
                raise ValidationError(f"Category {category_id!r} is used by a budget")
            self._store.delete_category(category_id)

    def _require_category(self, category_id: str) -> Category:
        for c in self._store.load_categories():
            if c.id == category_id:
                return c
        raise NotFoundError(f"category {category_id!r} not found")


def seed_categories(store: LedgerStore, categories: Sequence[Category] | None = None) -> int:
    """Save ``categories`` (default set when None) that the store lacks.

    Stored categories without keywords (as created by the initial migration)
    receive the keywords of the seed. Returns the number of saved categories.
    """

    have = {c.id: c for c in store.load_categories()}
    cats = list(categories) if categories is not None else default_categories()
    build_category_forest([*(c for c in have.values() if c.id not in {s.id for s in cats}), *cats])
    saved = 0
    for cat in cats:
        current = have.get(cat.id)
        if current is None or (not current.keywords and cat.keywords):
            store.save_category(cat)
            saved += 1
    return saved


__all__ = ["Ledger", "seed_categories"]
