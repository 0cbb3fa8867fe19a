"""Persistence collaborator contract and an in-memory implementation.

The ledger only talks to a :class:`LedgerStore`. Implementations must make
``append_transactions`` all-or-nothing: either every transaction of the batch
becomes visible or none does, and an id that is already stored aborts the
whole batch with :class:`~spaarapp.errors.ConsistencyError`.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from .errors import ConsistencyError, NotFoundError
from .models import Budget, Category, Transaction


@runtime_checkable
class LedgerStore(Protocol):
    def load_all_transactions(self) -> list[Transaction]: ...

    def append_transactions(self, transactions: Sequence[Transaction]) -> None: ...

    def delete_transaction(self, transaction_id: str) -> None: ...

    def update_transaction_category(
        self, transaction_id: str, category_id: str | None, confidence: float | None
    ) -> Transaction: ...

    def load_budgets(self) -> list[Budget]: ...

    def save_budget(self, budget: Budget) -> None: ...

    def delete_budget(self, budget_id: str) -> None: ...

    def load_categories(self) -> list[Category]: ...

    def save_category(self, category: Category) -> None: ...

    def delete_category(self, category_id: str) -> None: ...


class InMemoryStore:
    """Process-local store; each write swaps in a new immutable snapshot.

    Readers take the current tuple reference and therefore always see either
    the state before a write or after it.
    """

    def __init__(
        self,
        *,
        transactions: Sequence[Transaction] = (),
        budgets: Sequence[Budget] = (),
        categories: Sequence[Category] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._transactions: tuple[Transaction, ...] = ()
        self._budgets: tuple[Budget, ...] = tuple(budgets)
        self._categories: tuple[Category, ...] = tuple(categories)
        if transactions:
            self.append_transactions(transactions)

    # Transactions -----------------------------------------------------------

    def load_all_transactions(self) -> list[Transaction]:
        return list(self._transactions)

    def append_transactions(self, transactions: Sequence[Transaction]) -> None:
        with self._lock:
            known = {t.id for t in self._transactions}
            batch_ids: set[str] = set()
            for t in transactions:
                if t.id in known or t.id in batch_ids:
                    raise ConsistencyError(f"transaction id {t.id!r} already stored")
                batch_ids.add(t.id)
            self._transactions = self._transactions + tuple(transactions)

    def delete_transaction(self, transaction_id: str) -> None:
        with self._lock:
            remaining = tuple(t for t in self._transactions if t.id != transaction_id)
            if len(remaining) == len(self._transactions):
                raise NotFoundError(f"transaction {transaction_id!r} not found")
            self._transactions = remaining

    def update_transaction_category(
        self, transaction_id: str, category_id: str | None, confidence: float | None
    ) -> Transaction:
        with self._lock:
            for pos, t in enumerate(self._transactions):
                if t.id == transaction_id:
                    updated = t.with_category(category_id, confidence=confidence)
                    txs = list(self._transactions)
                    txs[pos] = updated
                    self._transactions = tuple(txs)
                    return updated
        raise NotFoundError(f"transaction {transaction_id!r} not found")

    # Budgets ----------------------------------------------------------------

    def load_budgets(self) -> list[Budget]:
        return list(self._budgets)

    def save_budget(self, budget: Budget) -> None:
        with self._lock:
            if any(b.id == budget.id for b in self._budgets):
                self._budgets = tuple(budget if b.id == budget.id else b for b in self._budgets)
            else:
                self._budgets = (*self._budgets, budget)

    def delete_budget(self, budget_id: str) -> None:
        with self._lock:
            remaining = tuple(b for b in self._budgets if b.id != budget_id)
            if len(remaining) == len(self._budgets):
                raise NotFoundError(f"budget {budget_id!r} not found")
            self._budgets = remaining

    # Categories -------------------------------------------------------------

    def load_categories(self) -> list[Category]:
        return list(self._categories)

    def save_category(self, category: Category) -> None:
        with self._lock:
            if any(c.id == category.id for c in self._categories):
                self._categories = tuple(
                    category if c.id == category.id else c for c in self._categories
                )
            else:
                self._categories = (*self._categories, category)

    def delete_category(self, category_id: str) -> None:
        with self._lock:
            remaining = tuple(c for c in self._categories if c.id != category_id)
            if len(remaining) == len(self._categories):
                raise NotFoundError(f"category {category_id!r} not found")
            self._categories = remaining


__all__ = ["InMemoryStore", "LedgerStore"]
