"""spaarapp.db: ledger database layer (SQLAlchemy/Alembic).

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic autogenerate/targeting
- ORM models in ``spaarapp.db.models`` (re-exported for convenience)
- Engine/session helpers in ``spaarapp.db.client``
"""

from __future__ import annotations

from .models import Base, LedgerBudget, LedgerCategory, LedgerTransaction

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "LedgerBudget",
    "LedgerCategory",
    "LedgerTransaction",
]
