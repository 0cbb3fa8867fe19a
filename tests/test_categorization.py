import datetime as dt
from decimal import Decimal

import pytest

from spaarapp.categories import (
    build_category_forest,
    descendants,
    normalize_name,
    slugify,
    validate_name,
)
from spaarapp.categorization import (
    FALLBACK_CATEGORY_ID,
    build_rules,
    categorize,
    categorize_batch,
    default_categories,
)
from spaarapp.errors import ValidationError
from spaarapp.models import Category, TransactionCandidate


def _tx(description: str, name: str | None = None) -> TransactionCandidate:
    return TransactionCandidate(
        source_row=1,
        date=dt.date(2024, 1, 15),
        amount=Decimal("-10.00"),
        description=description,
        counterparty_name=name,
    )


# ---- Rule matching -----------------------------------------------------------


def test_keyword_match_is_case_insensitive_on_description_or_name():
    rules = build_rules(default_categories())

    hit = categorize(_tx("ALBERT HEIJN 1234 UTRECHT"), rules)
    assert hit.category_id == "supermarkt"
    assert hit.confidence == 1.0
    assert hit.keyword == "albert heijn"

    by_name = categorize(_tx("Betaling", name="Netflix International"), rules)
    assert by_name.category_id == "entertainment"


def test_no_match_falls_back_with_zero_confidence():
    rules = build_rules(default_categories())

    miss = categorize(_tx("Onbekende winkel"), rules)

    assert miss.category_id == FALLBACK_CATEGORY_ID
    assert miss.confidence == 0.0
    assert miss.keyword is None


def test_longest_keyword_wins_then_earlier_rule():
    cats = [
        Category(id="a", name="A", keywords=("shop",)),
        Category(id="b", name="B", keywords=("coffee shop",)),
        Category(id="c", name="C", keywords=("store",)),
        Category(id="d", name="D", keywords=("store",)),
    ]
    rules = build_rules(cats)

    assert categorize(_tx("The Coffee Shop"), rules).category_id == "b"
    assert categorize(_tx("Corner store"), rules).category_id == "c"


def test_rule_order_puts_system_categories_first_then_sort_order():
    cats = [
        Category(id="user-late", name="U1", keywords=("x",), sort_order=5),
        Category(id="user-early", name="U2", keywords=("x",), sort_order=1),
        Category(id="user-unsorted", name="U3", keywords=("x",)),
        Category(id="sys", name="S", keywords=("x",), is_system=True, sort_order=9),
        Category(id="empty", name="E"),
    ]

    rules = build_rules(cats)

    assert [r.category_id for r in rules] == ["sys", "user-early", "user-late", "user-unsorted"]
    assert categorize(_tx("x"), rules).category_id == "sys"


def test_categorize_is_total_for_any_input():
    rules = build_rules(default_categories())
    txs = [_tx(d) for d in ("", "   ", "Jumbo Utrecht", "???", "Huur januari")]

    out = categorize_batch(txs, rules, fallback_id="overig")

    assert all(a.category_id for a in out)
    assert [a.category_id for a in out] == ["overig", "overig", "supermarkt", "overig", "huur"]


def test_empty_rule_set_always_falls_back():
    assert categorize(_tx("Albert Heijn"), [], fallback_id="other").category_id == "other"


# ---- Category model and forest ----------------------------------------------


def test_category_normalizes_keywords():
    cat = Category(id="x", name="X", keywords=("  Albert   Heijn ", "albert heijn", "", "JUMBO"))
    assert cat.keywords == ("albert heijn", "jumbo")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"id": "", "name": "X"},
        {"id": "x", "name": "  "},
        {"id": "x", "name": "X", "parent_id": "x"},
        {"id": "x", "name": "X", "budget_share": Decimal("120")},
    ],
)
def test_category_rejects_invalid_values(kwargs):
    with pytest.raises(ValidationError):
        Category(**kwargs)


def test_default_categories_form_a_valid_forest():
    forest = build_category_forest(default_categories())

    root_ids = [c.id for c in forest[None]]
    assert "overig" in root_ids
    assert [c.id for c in forest["boodschappen"]] == ["supermarkt"]
    assert descendants(forest, "utilities") == ["telecom"]


def test_forest_rejects_unknown_parent_duplicates_and_cycles():
    with pytest.raises(ValidationError, match="unknown parent"):
        build_category_forest([Category(id="a", name="A", parent_id="nope")])

    with pytest.raises(ValidationError, match="Duplicate category id"):
        build_category_forest([Category(id="a", name="A"), Category(id="A", name="B")])

    with pytest.raises(ValidationError, match="Duplicate category name"):
        build_category_forest([Category(id="a", name="Eten"), Category(id="b", name="eten")])

    with pytest.raises(ValidationError, match="cycle"):
        build_category_forest(
            [
                Category(id="a", name="A", parent_id="b"),
                Category(id="b", name="B", parent_id="a"),
            ]
        )


def test_name_helpers():
    assert normalize_name("  Eten   &  Drinken ") == "Eten & Drinken"
    assert validate_name("Eten & Drinken").ok
    assert validate_name("Café").ok
    assert not validate_name("").ok
    assert not validate_name("x" * 65).ok
    assert not validate_name("#hashtag").ok
    assert slugify("Eten & Drinken") == "eten-drinken"
    with pytest.raises(ValidationError):
        slugify("&&")
