# ruff: noqa: I001
"""Ledger core tables and seed categories.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2026-10-18
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # ledger_categories
    op.create_table(
        "ledger_categories",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column(
            "parent_id",
            sa.String(64),
            sa.ForeignKey("ledger_categories.id"),
            nullable=True,
        ),
        sa.Column("keywords", sa.JSON(), nullable=False),
        sa.Column("budget_share", sa.Numeric(5, 2), nullable=True),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sort_order", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    # System categories; the keyword rules for them are seeded by the
    # application (`spaarapp seed-categories`) so they can evolve without
    # a migration.
    system_categories = (
        ("inkomen", "Inkomen"),
        ("boodschappen", "Boodschappen"),
        ("huur", "Huur"),
        ("utilities", "Utilities"),
        ("vervoer", "Vervoer"),
        ("entertainment", "Entertainment"),
        ("gezondheid", "Gezondheid"),
        ("kleding", "Kleding"),
        ("eten-drinken", "Eten & Drinken"),
        ("sparen", "Sparen"),
        ("overig", "Overig"),
    )
    op.bulk_insert(
        sa.table(
            "ledger_categories",
            sa.column("id", sa.String()),
            sa.column("name", sa.String()),
            sa.column("keywords", sa.JSON()),
            sa.column("is_system", sa.Boolean()),
            sa.column("sort_order", sa.Integer()),
        ),
        [
            {"id": cid, "name": name, "keywords": [], "is_system": True, "sort_order": i}
            for i, (cid, name) in enumerate(system_categories)
        ],
    )

    # ledger_transactions
    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("counterparty_account", sa.String(), nullable=True),
        sa.Column("counterparty_name", sa.Text(), nullable=True),
        sa.Column("own_account", sa.String(), nullable=True),
        sa.Column("kind", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recurring_frequency", sa.String(32), nullable=True),
        sa.Column(
            "category_id",
            sa.String(64),
            sa.ForeignKey("ledger_categories.id"),
            nullable=True,
        ),
        sa.Column("category_confidence", sa.Float(), nullable=True),
        sa.Column("source_row", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("amount <> 0", name="ck_ledger_tx_amount_nonzero"),
        sa.CheckConstraint(
            "category_confidence IS NULL OR (category_confidence >= 0 AND category_confidence <= 1)",
            name="ck_ledger_tx_confidence_range",
        ),
    )
    op.create_index("ix_ledger_tx_date", "ledger_transactions", ["date"])
    op.create_index("ix_ledger_tx_category_date", "ledger_transactions", ["category_id", "date"])

    # ledger_budgets
    op.create_table(
        "ledger_budgets",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column(
            "category_id",
            sa.String(64),
            sa.ForeignKey("ledger_categories.id"),
            nullable=True,
        ),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("period", sa.String(16), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("notification_threshold", sa.Numeric(4, 3), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("amount > 0", name="ck_ledger_budget_amount_positive"),
        sa.CheckConstraint(
            "period IN ('weekly', 'monthly', 'quarterly', 'yearly')",
            name="ck_ledger_budget_period",
        ),
        sa.CheckConstraint(
            "notification_threshold > 0 AND notification_threshold <= 1",
            name="ck_ledger_budget_threshold",
        ),
    )


def downgrade() -> None:
    op.drop_table("ledger_budgets")
    op.drop_index("ix_ledger_tx_category_date", table_name="ledger_transactions")
    op.drop_index("ix_ledger_tx_date", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_table("ledger_categories")
