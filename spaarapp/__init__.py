"""Public interface for the ``spaarapp`` package.

This module exposes the ledger façade, the pipeline functions and the public
models/types as the stable import surface. There is no runtime logic here,
only symbol re-exports.
"""

from .aggregation import analyze_spending, monthly_totals
from .budgets import compute_status, create_budget, safe_to_spend, summarize_budgets
from .categorization import FALLBACK_CATEGORY_ID, build_rules, categorize, default_categories
from .config import ImportSchema, LocaleConfig, Settings, rabobank_schema
from .errors import (
    ConsistencyError,
    NotFoundError,
    ParseError,
    RowError,
    SpaarappError,
    ValidationError,
)
from .fingerprint import compute_fingerprint, deduplicate
from .ledger import Ledger
from .models import (
    Budget,
    BudgetLevel,
    BudgetPeriod,
    BudgetStatus,
    BudgetSummary,
    Category,
    CategorySpending,
    DateRange,
    ImportResult,
    SpendingAnalysis,
    Transaction,
    TransactionCandidate,
    Transactions,
    TransactionType,
    TrendDirection,
)
from .normalizers import normalize, preview, validate_structure
from .store import InMemoryStore, LedgerStore

__all__ = [
    # Façade
    "Ledger",
    "LedgerStore",
    "InMemoryStore",
    # Pipeline
    "normalize",
    "preview",
    "validate_structure",
    "compute_fingerprint",
    "deduplicate",
    "build_rules",
    "categorize",
    "default_categories",
    "FALLBACK_CATEGORY_ID",
    "create_budget",
    "compute_status",
    "summarize_budgets",
    "safe_to_spend",
    "analyze_spending",
    "monthly_totals",
    # Configuration
    "ImportSchema",
    "LocaleConfig",
    "Settings",
    "rabobank_schema",
    # Errors
    "SpaarappError",
    "ParseError",
    "RowError",
    "ValidationError",
    "ConsistencyError",
    "NotFoundError",
    # Models / types
    "Transaction",
    "TransactionCandidate",
    "Transactions",
    "TransactionType",
    "Category",
    "Budget",
    "BudgetPeriod",
    "BudgetLevel",
    "BudgetStatus",
    "BudgetSummary",
    "DateRange",
    "CategorySpending",
    "SpendingAnalysis",
    "TrendDirection",
    "ImportResult",
]
