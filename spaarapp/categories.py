"""Category name helpers and forest validation.

Categories form a forest: every ``parent_id`` must name another category in
the same set, and following parents must never loop. The ledger calls
:func:`build_category_forest` before accepting a new category set, so invalid
shapes are rejected at write time rather than discovered while rendering.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from .errors import ValidationError
from .models import Category

# ---------------------------
# Name normalization/validation
# ---------------------------

# Letters include accented Latin characters (café, crèche).
_ALLOWED_RE = re.compile(r"^[^\W_][\w &\-/.,']*$")


def normalize_name(name: str) -> str:
    """Return a trimmed, single-spaced representation of ``name``.

    Does not change case; consumers may choose preferred casing conventions.
    """

    return " ".join(name.strip().split())


@dataclass(frozen=True, slots=True)
class NameValidation:
    ok: bool
    reason: str | None = None


def validate_name(name: str, *, min_len: int = 1, max_len: int = 64) -> NameValidation:
    """Validation for category names.

    Rules
    -----
    - Trim whitespace; enforce length bounds 1..64.
    - Must start with a letter or digit; then letters, digits, spaces and
      ``& - / . , '``.
    """

    n = normalize_name(name)
    if len(n) < min_len:
        return NameValidation(False, "Name cannot be empty")
    if len(n) > max_len:
        return NameValidation(False, f"Name must be at most {max_len} characters")
    if not _ALLOWED_RE.match(n):
        return NameValidation(False, "Only letters, numbers, spaces, and & - / . , ' are allowed")
    return NameValidation(True, None)


def slugify(name: str) -> str:
    """Derive a category id from a display name (``Eten & Drinken`` → ``eten-drinken``)."""

    s = re.sub(r"[^\w]+", "-", normalize_name(name).lower()).strip("-_")
    if not s:
        raise ValidationError(f"Cannot derive a category id from {name!r}")
    return s


# ---------------------------
# Forest
# ---------------------------


type Forest = dict[str | None, list[Category]]


def build_category_forest(categories: Iterable[Category]) -> Forest:
    """Group categories by ``parent_id`` after validating the forest shape.

    The ``None`` key holds the roots. Children keep their input order.

    Raises
    ------
    ValidationError
        On duplicate ids (case-insensitive), duplicate names under the same
        parent, unknown parents, or parent cycles.
    """

    cats = list(categories)
    by_id: dict[str, Category] = {}
    for c in cats:
        key = c.id.lower()
        if key in by_id:
            raise ValidationError(f"Duplicate category id {c.id!r}")
        by_id[key] = c

    forest: Forest = {None: []}
    names: set[tuple[str | None, str]] = set()
    for c in cats:
        parent = c.parent_id.lower() if c.parent_id is not None else None
        if parent is not None and parent not in by_id:
            raise ValidationError(f"Category {c.id!r} references unknown parent {c.parent_id!r}")
        name_key = (parent, normalize_name(c.name).lower())
        if name_key in names:
            raise ValidationError(f"Duplicate category name {c.name!r} under the same parent")
        names.add(name_key)
        forest.setdefault(by_id[parent].id if parent else None, []).append(c)

    # Walk up from each node; a path longer than the set size means a cycle.
    for c in cats:
        node, steps = c, 0
        while node.parent_id is not None:
            node = by_id[node.parent_id.lower()]
            steps += 1
            if steps > len(cats):
                raise ValidationError(f"Category {c.id!r} is part of a parent cycle")
    return forest


def descendants(forest: Forest, category_id: str) -> list[str]:
    """Ids of all categories below ``category_id`` (depth-first, input order)."""

    out: list[str] = []
    stack = [category_id]
    while stack:
        current = stack.pop()
        children = [c.id for c in forest.get(current, [])]
        out.extend(children)
        stack.extend(reversed(children))
    return out


__all__ = [
    "Forest",
    "NameValidation",
    "build_category_forest",
    "descendants",
    "normalize_name",
    "slugify",
    "validate_name",
]
