"""Keyword-rule categorization.

Rules are an explicit ordered list built from the category set: system
categories first, then by ``sort_order`` (unset sorts last), then input
order. A rule hits when one of its keywords is a case-insensitive substring
of the transaction's description or counterparty name.

Among hits the longest matching keyword wins; equal lengths resolve to the
earlier rule. Without a hit the fallback category is assigned with
confidence 0.0. Categorization never raises for a transaction and never
leaves the category unset.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from .logging_setup import get_logger
from .models import Category

_logger = get_logger("spaarapp.categorization")

FALLBACK_CATEGORY_ID = "overig"


class Matchable(Protocol):
    @property
    def description(self) -> str: ...

    @property
    def counterparty_name(self) -> str | None: ...


@dataclass(frozen=True, slots=True)
class CategoryRule:
    category_id: str
    keywords: tuple[str, ...]
    order: int


@dataclass(frozen=True, slots=True)
class CategoryAssignment:
    category_id: str
    confidence: float
    keyword: str | None = None


def build_rules(categories: Iterable[Category]) -> list[CategoryRule]:
    """Order categories into rules; categories without keywords are skipped."""

    indexed = list(enumerate(categories))
    indexed.sort(
        key=lambda p: (
            not p[1].is_system,
            p[1].sort_order is None,
            p[1].sort_order or 0,
            p[0],
        )
    )
    return [
        CategoryRule(category_id=c.id, keywords=c.keywords, order=pos)
        for pos, (_, c) in enumerate(indexed)
        if c.keywords
    ]


def categorize(
    tx: Matchable,
    rules: Sequence[CategoryRule],
    *,
    fallback_id: str = FALLBACK_CATEGORY_ID,
) -> CategoryAssignment:
    haystacks = [tx.description.lower()]
    if tx.counterparty_name:
        haystacks.append(tx.counterparty_name.lower())

    best: tuple[int, CategoryRule, str] | None = None
    for rule in rules:
        for kw in rule.keywords:
            if best is not None and len(kw) <= best[0]:
                continue
            if any(kw in h for h in haystacks):
                best = (len(kw), rule, kw)

    if best is None:
        return CategoryAssignment(category_id=fallback_id, confidence=0.0)
    return CategoryAssignment(category_id=best[1].category_id, confidence=1.0, keyword=best[2])


def categorize_batch(
    txs: Iterable[Matchable],
    rules: Sequence[CategoryRule],
    *,
    fallback_id: str = FALLBACK_CATEGORY_ID,
) -> list[CategoryAssignment]:
    out = [categorize(tx, rules, fallback_id=fallback_id) for tx in txs]
    _logger.debug(
        "categorize:batch_done items=%d matched=%d fallback=%d",
        len(out),
        sum(1 for a in out if a.confidence > 0),
        sum(1 for a in out if a.confidence == 0),
    )
    return out


# ---------------------------------------------------------------------------
# Default Dutch category set
# ---------------------------------------------------------------------------

# (id, name, parent_id, keywords, is_system)
_DEFAULTS: tuple[tuple[str, str, str | None, tuple[str, ...], bool], ...] = (
    ("inkomen", "Inkomen", None, ("salaris", "loon", "inkomen"), True),
    ("boodschappen", "Boodschappen", None, ("picnic", "gorillas", "flink", "crisp"), True),
    ("huur", "Huur", None, ("huur", "hypotheek", "vve"), True),
    ("utilities", "Utilities", None, ("energie", "elektra", "waternet", "vattenfall", "eneco"), True),
    ("vervoer", "Vervoer", None, ("trein", "benzine", "tankstation", "ov-chipkaart", "shell"), True),
    ("entertainment", "Entertainment", None, ("netflix", "spotify", "videoland", "bol.com"), True),
    ("gezondheid", "Gezondheid", None, ("apotheek", "huisarts", "ziekenhuis", "tandarts"), True),
    ("kleding", "Kleding", None, ("h&m", "zara", "c&a", "bijenkorf"), True),
    ("eten-drinken", "Eten & Drinken", None, ("restaurant", "eetcafe", "lunch", "diner"), True),
    ("sparen", "Sparen", None, ("spaarrekening", "sparen"), True),
    (FALLBACK_CATEGORY_ID, "Overig", None, (), True),
    (
        "supermarkt",
        "Supermarkt",
        "boodschappen",
        ("albert heijn", "jumbo", "dirk", "c1000", "vomar", "dekamarkt", "ekoplaza"),
        False,
    ),
    ("fastfood", "Fastfood", "eten-drinken", ("mcdonald", "burger king", "kfc", "subway", "dominos"), False),
    ("telecom", "Telecom", "utilities", ("kpn", "vodafone", "t-mobile", "ziggo", "tele2"), False),
    ("verzekering", "Verzekering", None, ("verzekering", "menzis", "aegon", "zilveren kruis"), False),
    ("belasting", "Belasting", None, ("belastingdienst", "belasting", "toeslag", "douane"), False),
    ("sport", "Sport", "gezondheid", ("sportschool", "fitness", "basic-fit"), False),
    ("onderwijs", "Onderwijs", None, ("universiteit", "studie", "cursus", "duo"), False),
)


def default_categories() -> list[Category]:
    """The categories a fresh ledger is seeded with, including the fallback."""

    return [
        Category(
            id=cid,
            name=name,
            parent_id=parent,
            keywords=keywords,
            is_system=is_system,
            sort_order=pos,
        )
        for pos, (cid, name, parent, keywords, is_system) in enumerate(_DEFAULTS)
    ]


__all__ = [
    "FALLBACK_CATEGORY_ID",
    "CategoryAssignment",
    "CategoryRule",
    "Matchable",
    "build_rules",
    "categorize",
    "categorize_batch",
    "default_categories",
]
