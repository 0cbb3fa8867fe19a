"""Transaction identity and duplicate filtering.

Identity rule, in priority order:

1. a bank-assigned external reference, used verbatim;
2. a SHA-256 fingerprint over canonical JSON of ``(date, amount,
   description, counterparty_account)``.

Two genuinely distinct purchases that share all four fields (two coffees at
the same shop on the same day, say) collide under rule 2 and the second one
is reported as a duplicate. This is a known limitation for exports without a
reference column; no tie-breaker is added because any tie-breaker that is not
part of the row content would make re-imports non-idempotent.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from .logging_setup import get_logger
from .models import TransactionCandidate

_logger = get_logger("spaarapp.fingerprint")


def _amount_2dp(amount: Decimal) -> str:
    return str(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _norm_str(v: str | None) -> str | None:
    if v is None:
        return None
    s = " ".join(v.split())
    return s or None


def compute_fingerprint(candidate: TransactionCandidate) -> str:
    """Compute a stable SHA-256 fingerprint over canonical fields.

    Fields used: date (YYYY-MM-DD), amount (2dp string), description and
    counterparty account (trimmed; description compared case-insensitively).
    """

    payload = {
        "date": candidate.date.isoformat(),
        "amount": _amount_2dp(candidate.amount),
        "description": (_norm_str(candidate.description) or "").lower(),
        "counterparty_account": _norm_str(candidate.counterparty_account),
    }
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def assign_identity(candidate: TransactionCandidate) -> str:
    ref = _norm_str(candidate.external_ref)
    return ref if ref is not None else compute_fingerprint(candidate)


@dataclass(frozen=True, slots=True)
class IdentifiedCandidate:
    id: str
    candidate: TransactionCandidate


@dataclass(slots=True)
class DedupResult:
    """Candidates to append, in input order, plus what was filtered out."""

    accepted: list[IdentifiedCandidate] = field(default_factory=list)
    duplicates: list[IdentifiedCandidate] = field(default_factory=list)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicates)


def deduplicate(
    candidates: Iterable[TransactionCandidate], existing_ids: Iterable[str]
) -> DedupResult:
    """Drop candidates whose id is already in the ledger or earlier in the batch."""

    seen = set(existing_ids)
    known = len(seen)
    result = DedupResult()
    for cand in candidates:
        item = IdentifiedCandidate(id=assign_identity(cand), candidate=cand)
        if item.id in seen:
            result.duplicates.append(item)
            continue
        seen.add(item.id)
        result.accepted.append(item)

    _logger.debug(
        "dedupe:done existing=%d accepted=%d duplicates=%d",
        known,
        len(result.accepted),
        result.duplicate_count,
    )
    return result


__all__ = [
    "DedupResult",
    "IdentifiedCandidate",
    "assign_identity",
    "compute_fingerprint",
    "deduplicate",
]
