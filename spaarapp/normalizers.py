"""CSV bank export → normalized transaction candidates.

Parsing follows RFC 4180 via the stdlib :mod:`csv` module (quoted fields with
embedded delimiters and newlines, doubled quotes). Everything that varies by
institution (column names or positions, date formats, direction markers,
number formatting) comes from the :class:`~spaarapp.config.ImportSchema`
passed in; the functions here are pure functions of their inputs.

Row-level problems never abort the file: they are collected as
:class:`~spaarapp.errors.RowError` records with 1-based data row numbers (the
first row after the header is row 1; blank lines are skipped and not
numbered). File-level problems raise :class:`~spaarapp.errors.ParseError`.
"""

from __future__ import annotations

import csv
import datetime as dt
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from io import StringIO

from .config import FIELD_NAMES, REQUIRED_FIELDS, ImportSchema, LocaleConfig, rabobank_schema
from .errors import ParseError, RowError, RowParseError
from .logging_setup import get_logger
from .models import TransactionCandidate, TransactionType
from .pmap import p_map

_logger = get_logger("spaarapp.normalizers")

_CANDIDATE_DELIMITERS: tuple[str, ...] = (",", ";", "|", "\t")
_PARALLEL_CHUNK = 500
_FALLBACK_DESCRIPTION = "Onbekende transactie"

type ProgressFn = Callable[[int, int], None]


@dataclass(slots=True)
class NormalizedBatch:
    """Normalizer output: candidates in file order plus diagnostics."""

    candidates: list[TransactionCandidate]
    errors: list[RowError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    total_rows: int = 0
    delimiter: str = ","
    columns: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Field-level helpers
# ---------------------------------------------------------------------------


def clean_text(value: str | None) -> str | None:
    """Trim and collapse internal whitespace (including newlines)."""

    if value is None:
        return None
    cleaned = " ".join(value.split())
    return cleaned or None


def detect_delimiter(header_line: str) -> str:
    """Pick the delimiter that splits ``header_line`` into the most columns.

    Ties resolve in the order ``, ; | TAB``. Quoted header names are honored.
    """

    best, best_count = ",", 0
    for delim in _CANDIDATE_DELIMITERS:
        try:
            cols = next(csv.reader([header_line], delimiter=delim))
        except (csv.Error, StopIteration):
            continue
        if len(cols) > best_count:
            best, best_count = delim, len(cols)
    return best


_PLAIN_NUMBER_RE = re.compile(r"^\d+(\.\d+)?$")
_DOT_DECIMAL_RE = re.compile(r"^\d+\.\d{1,2}$")
_FRACTION_RE = re.compile(r"^\d{1,2}$")


def parse_amount(raw: str | None, locale: LocaleConfig | None = None) -> Decimal:
    """Parse a localized amount into an exact ``Decimal``.

    With the default Dutch locale ``"1.234,56"`` becomes ``Decimal("1234.56")``.
    Leading/trailing minus signs and surrounding parentheses mark negatives.
    A lone dot followed by one or two digits (``"87.45"``) is read as a
    decimal point, since a thousands group always has three digits.

    Thousands separators must sit between groups of three digits and at most
    two fraction digits are accepted, so ``"1,234.56"`` under the Dutch locale
    and sub-cent values like ``"0,004"`` raise ``RowParseError`` instead of
    being read as a different amount.
    """

    loc = locale or LocaleConfig()
    if raw is None or not raw.strip():
        raise RowParseError("amount is empty")
    s = raw.strip()
    for sym in loc.currency_symbols:
        s = s.replace(sym, "")
    s = s.replace("\u00a0", "").replace(" ", "")

    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative, s = True, s[1:-1]
    if s.startswith(("-", "+")):
        negative, s = negative or s[0] == "-", s[1:]
    elif s.endswith("-"):
        negative, s = True, s[:-1]

    if loc.decimal_separator != "." and loc.decimal_separator not in s and _DOT_DECIMAL_RE.match(s):
        normalized = s
    else:
        integer, sep, fraction = s.partition(loc.decimal_separator)
        if sep and not _FRACTION_RE.match(fraction):
            raise RowParseError(
                f"invalid amount {raw.strip()!r}: expected 1-2 digits after {loc.decimal_separator!r}"
            )
        if loc.thousands_separator and loc.thousands_separator in integer:
            grouped = rf"^\d{{1,3}}(?:{re.escape(loc.thousands_separator)}\d{{3}})+$"
            if not re.match(grouped, integer):
                raise RowParseError(f"invalid amount {raw.strip()!r}: misplaced thousands separator")
            integer = integer.replace(loc.thousands_separator, "")
        normalized = f"{integer}.{fraction}" if sep else integer

    if not _PLAIN_NUMBER_RE.match(normalized):
        raise RowParseError(f"invalid amount {raw.strip()!r}")
    try:
        value = Decimal(normalized)
    except InvalidOperation as exc:  # pragma: no cover - guarded by the regex
        raise RowParseError(f"invalid amount {raw.strip()!r}") from exc
    return -value if negative else value


def parse_direction(raw: str | None, schema: ImportSchema) -> TransactionType | None:
    """Map a direction marker (``Af``/``Bij``, ``debit``/``credit``) to a type.

    Returns ``None`` for an empty cell. Raises ``RowParseError`` for a marker
    that is in neither vocabulary.
    """

    v = (raw or "").strip().lower()
    if not v:
        return None
    if v in schema.debit_markers:
        return TransactionType.DEBIT
    if v in schema.credit_markers:
        return TransactionType.CREDIT
    raise RowParseError(f"unknown direction marker {raw.strip()!r}")


def parse_date(raw: str | None, formats: Sequence[str]) -> dt.date:
    s = (raw or "").strip()
    if not s:
        raise RowParseError("date is empty")
    for fmt in formats:
        try:
            return dt.datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    raise RowParseError(f"unparseable date {s!r}")


_TAG_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"incasso|\bsepa\b"), "automatische incasso"),
    (re.compile(r"\bideal\b"), "iDEAL"),
    (re.compile(r"\bpin\b|betaalautomaat"), "pinbetaling"),
    (re.compile(r"online|webshop"), "online"),
    (re.compile(r"\bcash\b|geldautomaat"), "contant"),
    (re.compile(r"\bgift\b|cadeau"), "geschenk"),
)

_RECURRING_MARKERS = (
    "incasso",
    "periodiek",
    "maandelijks",
    "kwartaal",
    "jaarlijks",
    "abonnement",
    "verzekering",
)

_FREQUENCIES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("maandelijks", "per maand"), "maandelijks"),
    (("wekelijks", "per week"), "wekelijks"),
    (("kwartaal",), "per kwartaal"),
    (("jaarlijks", "per jaar"), "jaarlijks"),
)


def extract_tags(*parts: str | None) -> tuple[str, ...]:
    text = " ".join(p for p in parts if p).lower()
    return tuple(tag for pattern, tag in _TAG_PATTERNS if pattern.search(text))


def detect_recurring(*parts: str | None) -> bool:
    text = " ".join(p for p in parts if p).lower()
    return any(marker in text for marker in _RECURRING_MARKERS)


def detect_recurring_frequency(*parts: str | None) -> str | None:
    text = " ".join(p for p in parts if p).lower()
    for markers, label in _FREQUENCIES:
        if any(m in text for m in markers):
            return label
    return None


# ---------------------------------------------------------------------------
# Header / column resolution
# ---------------------------------------------------------------------------


def _norm_header(name: str) -> str:
    return " ".join(name.replace("\ufeff", "").split()).lower()


def resolve_columns(header: Sequence[str], schema: ImportSchema) -> dict[str, int]:
    """Map schema field names to column positions for this ``header``.

    Explicit ``schema.column_indices`` win; otherwise the first alias that
    matches a header name (case-insensitive, whitespace-normalized) is used.
    """

    positions = {_norm_header(h): i for i, h in reversed(list(enumerate(header)))}
    out: dict[str, int] = {}
    for name in FIELD_NAMES:
        if name in schema.column_indices:
            out[name] = schema.column_indices[name]
            continue
        for alias in schema.aliases(name):
            idx = positions.get(_norm_header(alias))
            if idx is not None:
                out[name] = idx
                break
    # The description column doubles as counterparty name in some layouts;
    # never map both to the same position.
    if out.get("counterparty_name") is not None and out.get("counterparty_name") == out.get(
        "description"
    ):
        del out["counterparty_name"]
    return out


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def _decode(raw: str | bytes) -> str:
    if isinstance(raw, bytes):
        try:
            return raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ParseError(f"file is not valid UTF-8: {exc}") from exc
    return raw.removeprefix("\ufeff")


def _read_records(text: str, schema: ImportSchema) -> tuple[str, list[str], list[list[str]]]:
    """Return ``(delimiter, header, data_records)``; blank records dropped."""

    header_line = next((ln for ln in text.splitlines() if ln.strip()), None)
    if header_line is None:
        raise ParseError("file is empty; a header row is required")
    delimiter = schema.delimiter or detect_delimiter(header_line)

    try:
        with StringIO(text, newline="") as f:
            rows = [r for r in csv.reader(f, delimiter=delimiter) if any(c.strip() for c in r)]
    except csv.Error as exc:
        raise ParseError(f"malformed CSV: {exc}") from exc

    if not rows:
        raise ParseError("file has no header row; every line is blank or only delimiters")
    header = [h.strip() for h in rows[0]]
    return delimiter, header, rows[1:]


def _repair_decimal_comma(
    fields: list[str], ncols: int, amount_idx: int | None
) -> list[str] | None:
    """Rejoin an amount split on an unquoted decimal comma, or return None."""

    if amount_idx is None or len(fields) != ncols + 1 or amount_idx + 1 >= len(fields):
        return None
    whole, frac = fields[amount_idx].strip(), fields[amount_idx + 1].strip()
    if re.fullmatch(r"[-+]?(€\s?)?\d{1,3}(\.\d{3})*|[-+]?(€\s?)?\d+", whole) and re.fullmatch(
        r"\d{1,2}", frac
    ):
        return [*fields[:amount_idx], f"{whole},{frac}", *fields[amount_idx + 2 :]]
    return None


@dataclass(frozen=True, slots=True)
class _RowOutcome:
    candidate: TransactionCandidate | None = None
    error: RowError | None = None
    warnings: tuple[str, ...] = ()


def _cell(fields: Sequence[str], columns: dict[str, int], name: str) -> str | None:
    idx = columns.get(name)
    if idx is None or idx >= len(fields):
        return None
    return fields[idx]


def _normalize_row(
    row_no: int,
    fields: list[str],
    *,
    ncols: int,
    columns: dict[str, int],
    schema: ImportSchema,
    delimiter: str,
) -> _RowOutcome:
    warnings: list[str] = []
    try:
        if len(fields) > ncols:
            repaired = None
            if schema.repair_decimal_comma and delimiter == schema.locale.decimal_separator:
                repaired = _repair_decimal_comma(fields, ncols, columns.get("amount"))
            if repaired is None:
                raise RowParseError(f"expected {ncols} fields, found {len(fields)}")
            warnings.append(f"row {row_no}: unquoted decimal comma in amount was repaired")
            fields = repaired

        date = parse_date(_cell(fields, columns, "date"), schema.date_formats)
        literal = parse_amount(_cell(fields, columns, "amount"), schema.locale)
        if literal == 0:
            raise RowParseError("amount is zero")

        raw_direction = _cell(fields, columns, "direction")
        try:
            direction = parse_direction(raw_direction, schema)
        except RowParseError as exc:
            warnings.append(f"row {row_no}: {exc}; using the amount sign")
            direction = None

        if direction is TransactionType.DEBIT:
            amount = -abs(literal)
        elif direction is TransactionType.CREDIT:
            amount = abs(literal)
        else:
            amount = literal
        # Unsigned amounts are normal with a direction column; only a literal
        # minus on a credit row is a real conflict.
        if direction is TransactionType.CREDIT and literal < 0:
            warnings.append(f"row {row_no}: direction {raw_direction!r} overrides amount sign")

        name = clean_text(_cell(fields, columns, "counterparty_name"))
        kind = clean_text(_cell(fields, columns, "kind"))
        notes = clean_text(_cell(fields, columns, "notes"))
        description = (
            clean_text(_cell(fields, columns, "description")) or name or notes or _FALLBACK_DESCRIPTION
        )

        candidate = TransactionCandidate(
            source_row=row_no,
            date=date,
            amount=amount,
            description=description,
            counterparty_account=clean_text(_cell(fields, columns, "counterparty_account")),
            counterparty_name=name,
            own_account=clean_text(_cell(fields, columns, "own_account")),
            external_ref=clean_text(_cell(fields, columns, "reference")),
            kind=kind,
            notes=notes,
            tags=extract_tags(description, kind, notes),
            is_recurring=detect_recurring(description, kind),
            recurring_frequency=detect_recurring_frequency(description, notes),
        )
        return _RowOutcome(candidate=candidate, warnings=tuple(warnings))
    except RowParseError as exc:
        return _RowOutcome(error=RowError(row=row_no, reason=str(exc)), warnings=tuple(warnings))


# ---------------------------------------------------------------------------
# Public entrypoints
# ---------------------------------------------------------------------------


def validate_structure(raw_text: str | bytes, schema: ImportSchema | None = None) -> list[str]:
    """Return the required fields the header cannot provide (empty when OK)."""

    schema = schema or rabobank_schema()
    _, header, _ = _read_records(_decode(raw_text), schema)
    columns = resolve_columns(header, schema)
    return [f for f in REQUIRED_FIELDS if f not in columns]


def normalize(
    raw_text: str | bytes,
    schema: ImportSchema | None = None,
    *,
    workers: int = 1,
    on_progress: ProgressFn | None = None,
) -> NormalizedBatch:
    """Parse a bank export into transaction candidates.

    Raises
    ------
    ParseError
        When the file cannot be decoded, has no header, lacks the required
        date/amount columns, or yields zero valid rows. In the last case the
        exception carries the collected row errors.
    """

    schema = schema or rabobank_schema()
    text = _decode(raw_text)
    delimiter, header, records = _read_records(text, schema)
    columns = resolve_columns(header, schema)
    missing = [f for f in REQUIRED_FIELDS if f not in columns]
    if missing:
        raise ParseError(
            f"header is missing required columns for: {', '.join(missing)} "
            f"(header: {', '.join(header)})"
        )

    ncols = len(header)
    total = len(records)
    _logger.info(
        "normalize:start schema=%s delimiter=%r columns=%d rows=%d workers=%d",
        schema.name,
        delimiter,
        ncols,
        total,
        workers,
    )

    numbered = list(enumerate(records, start=1))

    def _one(item: tuple[int, list[str]]) -> _RowOutcome:
        row_no, fields = item
        return _normalize_row(
            row_no, fields, ncols=ncols, columns=columns, schema=schema, delimiter=delimiter
        )

    outcomes: list[_RowOutcome] = []
    if workers > 1:
        for base in range(0, total, _PARALLEL_CHUNK):
            outcomes.extend(p_map(numbered[base : base + _PARALLEL_CHUNK], _one, concurrency=workers))
            if on_progress is not None:
                on_progress(len(outcomes), total)
    else:
        for item in numbered:
            outcomes.append(_one(item))
            if on_progress is not None:
                on_progress(len(outcomes), total)

    batch = NormalizedBatch(
        candidates=[o.candidate for o in outcomes if o.candidate is not None],
        errors=[o.error for o in outcomes if o.error is not None],
        warnings=[w for o in outcomes for w in o.warnings],
        total_rows=total,
        delimiter=delimiter,
        columns=columns,
    )
    _logger.info(
        "normalize:done rows=%d valid=%d errors=%d warnings=%d",
        total,
        len(batch.candidates),
        len(batch.errors),
        len(batch.warnings),
    )

    if not batch.candidates:
        reason = "no data rows found" if total == 0 else "no valid transactions found"
        raise ParseError(reason, row_errors=batch.errors, total_rows=total)
    return batch


def preview(
    raw_text: str | bytes, schema: ImportSchema | None = None, *, limit: int = 10
) -> NormalizedBatch:
    """Normalize and keep only the first ``limit`` candidates."""

    if limit < 0:
        raise ValueError("limit must be non-negative")
    batch = normalize(raw_text, schema)
    batch.candidates = batch.candidates[:limit]
    return batch


__all__ = [
    "NormalizedBatch",
    "clean_text",
    "detect_delimiter",
    "detect_recurring",
    "detect_recurring_frequency",
    "extract_tags",
    "normalize",
    "parse_amount",
    "parse_date",
    "parse_direction",
    "preview",
    "resolve_columns",
    "validate_structure",
]
