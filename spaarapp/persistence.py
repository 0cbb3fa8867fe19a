"""SQL-backed ledger store.

:class:`SqlLedgerStore` implements :class:`~spaarapp.store.LedgerStore` on
the ORM models in :mod:`spaarapp.db.models`, using one
:func:`~spaarapp.db.client.session_scope` per operation. A batch append runs
in a single database transaction; a primary-key clash anywhere in the batch
rolls the whole batch back and surfaces as ``ConsistencyError``.

Scope:
- Schema management is Alembic's job (``alembic/versions``);
  :meth:`SqlLedgerStore.create_schema` exists for tests and throwaway
  SQLite files.
- Amounts are stored with two decimals (``Numeric(18, 2)``).
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from .db import Base
from .db.client import get_engine, resolve_database_url, session_scope
from .db.models import LedgerBudget, LedgerCategory, LedgerTransaction
from .errors import ConsistencyError, NotFoundError
from .logging_setup import get_logger
from .models import Budget, BudgetPeriod, Category, Transaction

_logger = get_logger("spaarapp.persistence")

_CENT = Decimal("0.01")


def _to_decimal_2(d: Decimal) -> Decimal:
    return d.quantize(_CENT, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _tx_to_row(t: Transaction) -> LedgerTransaction:
    return LedgerTransaction(
        id=t.id,
        date=t.date,
        amount=_to_decimal_2(t.amount),
        description=t.description,
        counterparty_account=t.counterparty_account,
        counterparty_name=t.counterparty_name,
        own_account=t.own_account,
        kind=t.kind,
        notes=t.notes,
        tags=list(t.tags),
        is_recurring=t.is_recurring,
        recurring_frequency=t.recurring_frequency,
        category_id=t.category_id,
        category_confidence=t.category_confidence,
        source_row=t.source_row,
    )


def _tx_from_row(r: LedgerTransaction) -> Transaction:
    return Transaction(
        id=r.id,
        date=r.date,
        amount=_to_decimal_2(Decimal(r.amount)),
        description=r.description,
        counterparty_account=r.counterparty_account,
        counterparty_name=r.counterparty_name,
        category_id=r.category_id,
        category_confidence=r.category_confidence,
        own_account=r.own_account,
        kind=r.kind,
        notes=r.notes,
        tags=tuple(r.tags or ()),
        is_recurring=bool(r.is_recurring),
        recurring_frequency=r.recurring_frequency,
        source_row=r.source_row,
    )


def _budget_from_row(r: LedgerBudget) -> Budget:
    return Budget(
        id=r.id,
        name=r.name,
        amount=_to_decimal_2(Decimal(r.amount)),
        period=BudgetPeriod(r.period),
        start_date=r.start_date,
        category_id=r.category_id,
        end_date=r.end_date,
        notification_threshold=Decimal(r.notification_threshold).normalize(),
    )


def _category_from_row(r: LedgerCategory) -> Category:
    return Category(
        id=r.id,
        name=r.name,
        parent_id=r.parent_id,
        keywords=tuple(r.keywords or ()),
        budget_share=Decimal(r.budget_share) if r.budget_share is not None else None,
        is_system=bool(r.is_system),
        sort_order=r.sort_order,
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SqlLedgerStore:
    """:class:`~spaarapp.store.LedgerStore` backed by a SQLAlchemy database."""

    def __init__(self, database_url: str | None = None) -> None:
        self._url = resolve_database_url(database_url)
        self._engine = get_engine(database_url=self._url)

    def create_schema(self) -> None:
        Base.metadata.create_all(bind=self._engine)

    # Transactions -----------------------------------------------------------

    def load_all_transactions(self) -> list[Transaction]:
        with session_scope(database_url=self._url) as session:
            rows = session.scalars(
                select(LedgerTransaction).order_by(LedgerTransaction.date, LedgerTransaction.id)
            ).all()
            return [_tx_from_row(r) for r in rows]

    def append_transactions(self, transactions: Sequence[Transaction]) -> None:
        if not transactions:
            return
        try:
            with session_scope(database_url=self._url) as session:
                session.add_all([_tx_to_row(t) for t in transactions])
                session.flush()
        except IntegrityError as exc:
            _logger.error("persistence:append_rejected count=%d error=%s", len(transactions), exc.orig)
            raise ConsistencyError(f"append rejected, batch rolled back: {exc.orig}") from exc
        _logger.info("persistence:append_committed count=%d", len(transactions))

    def delete_transaction(self, transaction_id: str) -> None:
        with session_scope(database_url=self._url) as session:
            result = session.execute(
                delete(LedgerTransaction).where(LedgerTransaction.id == transaction_id)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"transaction {transaction_id!r} not found")

    def update_transaction_category(
        self, transaction_id: str, category_id: str | None, confidence: float | None
    ) -> Transaction:
        try:
            with session_scope(database_url=self._url) as session:
                row = session.get(LedgerTransaction, transaction_id)
                if row is None:
                    raise NotFoundError(f"transaction {transaction_id!r} not found")
                updated = _tx_from_row(row).with_category(category_id, confidence=confidence)
                row.category_id = updated.category_id
                row.category_confidence = updated.category_confidence
                session.flush()
                return updated
        except IntegrityError as exc:
            raise ConsistencyError(f"unknown category {category_id!r}") from exc

    # Budgets ----------------------------------------------------------------

    def load_budgets(self) -> list[Budget]:
        with session_scope(database_url=self._url) as session:
            rows = session.scalars(
                select(LedgerBudget).order_by(LedgerBudget.created_at, LedgerBudget.id)
            ).all()
            return [_budget_from_row(r) for r in rows]

    def save_budget(self, budget: Budget) -> None:
        try:
            with session_scope(database_url=self._url) as session:
                row = session.get(LedgerBudget, budget.id) or LedgerBudget(id=budget.id)
                row.name = budget.name
                row.category_id = budget.category_id
                row.amount = _to_decimal_2(budget.amount)
                row.period = str(budget.period)
                row.start_date = budget.start_date
                row.end_date = budget.end_date
                row.notification_threshold = budget.notification_threshold
                session.add(row)
        except IntegrityError as exc:
            raise ConsistencyError(f"budget {budget.id!r} rejected: {exc.orig}") from exc

    def delete_budget(self, budget_id: str) -> None:
        with session_scope(database_url=self._url) as session:
            result = session.execute(delete(LedgerBudget).where(LedgerBudget.id == budget_id))
            if result.rowcount == 0:
                raise NotFoundError(f"budget {budget_id!r} not found")

    # Categories -------------------------------------------------------------

    def load_categories(self) -> list[Category]:
        with session_scope(database_url=self._url) as session:
            rows = session.scalars(
                select(LedgerCategory).order_by(
                    LedgerCategory.sort_order.is_(None),
                    LedgerCategory.sort_order,
                    LedgerCategory.created_at,
                    LedgerCategory.id,
                )
            ).all()
            return [_category_from_row(r) for r in rows]

    def save_category(self, category: Category) -> None:
        try:
            with session_scope(database_url=self._url) as session:
                row = session.get(LedgerCategory, category.id) or LedgerCategory(id=category.id)
                row.name = category.name
                row.parent_id = category.parent_id
                row.keywords = list(category.keywords)
                row.budget_share = category.budget_share
                row.is_system = category.is_system
                row.sort_order = category.sort_order
                session.add(row)
        except IntegrityError as exc:
            raise ConsistencyError(f"category {category.id!r} rejected: {exc.orig}") from exc

    def delete_category(self, category_id: str) -> None:
        try:
            with session_scope(database_url=self._url) as session:
                result = session.execute(
                    delete(LedgerCategory).where(LedgerCategory.id == category_id)
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"category {category_id!r} not found")
        except IntegrityError as exc:
            raise ConsistencyError(f"category {category_id!r} is still referenced") from exc


__all__ = ["SqlLedgerStore"]
