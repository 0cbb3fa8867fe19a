"""ORM models for the ledger tables.

Amounts are ``Numeric(18, 2)``; the store converts to and from ``Decimal``.
Derived budget figures (spent/remaining) are intentionally absent: they are
recomputed from transactions on read.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: ledger_categories
# ---------------------------


class LedgerCategory(Base):
    __tablename__ = "ledger_categories"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    # Forest shape (no cycles, resolvable parents) is validated in the
    # ledger before writes; the FK only guarantees the parent row exists.
    parent_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("ledger_categories.id"), nullable=True
    )
    keywords: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    budget_share: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Core: ledger_transactions
# ---------------------------


class LedgerTransaction(Base):
    __tablename__ = "ledger_transactions"

    # External bank reference or SHA-256 fingerprint (64 hex chars).
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    counterparty_account: Mapped[str | None] = mapped_column(String, nullable=True)
    counterparty_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    own_account: Mapped[str | None] = mapped_column(String, nullable=True)
    kind: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_frequency: Mapped[str | None] = mapped_column(String(32), nullable=True)
    category_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("ledger_categories.id"), nullable=True
    )
    category_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    source_row: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_ledger_tx_amount_nonzero"),
        CheckConstraint(
            "category_confidence IS NULL OR (category_confidence >= 0 AND category_confidence <= 1)",
            name="ck_ledger_tx_confidence_range",
        ),
        Index("ix_ledger_tx_date", "date"),
        Index("ix_ledger_tx_category_date", "category_id", "date"),
    )


# ---------------------------
# Core: ledger_budgets
# ---------------------------


class LedgerBudget(Base):
    __tablename__ = "ledger_budgets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    category_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("ledger_categories.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    period: Mapped[str] = mapped_column(String(16), nullable=False)
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    notification_threshold: Mapped[Decimal] = mapped_column(Numeric(4, 3), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ledger_budget_amount_positive"),
        CheckConstraint(
            "period IN ('weekly', 'monthly', 'quarterly', 'yearly')",
            name="ck_ledger_budget_period",
        ),
        CheckConstraint(
            "notification_threshold > 0 AND notification_threshold <= 1",
            name="ck_ledger_budget_threshold",
        ),
    )


__all__ = [
    "Base",
    "LedgerBudget",
    "LedgerCategory",
    "LedgerTransaction",
]
