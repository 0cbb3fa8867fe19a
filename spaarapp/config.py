"""Explicit configuration values for parsing and runtime behavior.

Parsing never reads ambient state: callers hand an :class:`ImportSchema`
(with its nested :class:`LocaleConfig`) to the normalizer. Runtime settings
for the CLI and host applications come from the environment via
:meth:`Settings.from_env`; entrypoints load ``.env`` with ``python-dotenv``
before calling it.
"""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .logging_setup import parse_level

_DELIMITERS = (",", ";", "|", "\t")

# Human-style date patterns (as stored in user settings) to strptime formats.
_DATE_TOKENS = (("YYYY", "%Y"), ("YY", "%y"), ("MM", "%m"), ("DD", "%d"))


def to_strptime_format(pattern: str) -> str:
    """Translate ``DD-MM-YYYY``-style patterns; strptime formats pass through."""

    p = pattern.strip()
    if "%" in p:
        return p
    for token, directive in _DATE_TOKENS:
        p = p.replace(token, directive)
    return p


class LocaleConfig(BaseModel):
    """Number formatting conventions of the export (Dutch by default)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    decimal_separator: str = ","
    thousands_separator: str | None = "."
    currency_symbols: tuple[str, ...] = ("€", "EUR")

    @field_validator("decimal_separator")
    @classmethod
    def _single_char(cls, v: str) -> str:
        if len(v) != 1:
            raise ValueError("decimal_separator must be a single character")
        return v


class ImportSchema(BaseModel):
    """Column layout and vocabulary of one institution's CSV export.

    Column lookups use case-insensitive alias lists; ``column_indices`` (field
    name to 0-based position) overrides them for headerless or oddly named
    layouts. Only ``date`` and ``amount`` are required.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = "generic"
    delimiter: str | None = None
    date_format: str = "%d-%m-%Y"
    fallback_date_formats: tuple[str, ...] = (
        "%Y%m%d",
        "%d/%m/%Y",
        "%Y-%m-%d",
        "%d.%m.%Y",
    )

    date_columns: tuple[str, ...] = ("Datum", "Date", "Boekdatum", "Transactiedatum")
    description_columns: tuple[str, ...] = (
        "Naam/Omschrijving",
        "Naam / Omschrijving",
        "Omschrijving",
        "Omschrijving-1",
        "Description",
    )
    counterparty_name_columns: tuple[str, ...] = ("Naam tegenpartij", "Tegenpartij", "Naam")
    own_account_columns: tuple[str, ...] = ("Rekening", "IBAN/BBAN", "Account")
    counterparty_account_columns: tuple[str, ...] = (
        "Tegenrekening",
        "Tegenrekening IBAN/BBAN",
        "Counterparty account",
    )
    direction_columns: tuple[str, ...] = ("Af/Bij", "Af Bij", "Debet/Credit", "Direction")
    amount_columns: tuple[str, ...] = ("Bedrag", "Bedrag (EUR)", "Amount")
    kind_columns: tuple[str, ...] = ("MutatieSoort", "Mutatie", "Transactiesoort")
    notes_columns: tuple[str, ...] = ("Mededelingen", "Mededeling", "Notes")
    reference_columns: tuple[str, ...] = ("Transactiereferentie", "Referentie", "Reference")
    column_indices: dict[str, int] = Field(default_factory=dict)

    debit_markers: tuple[str, ...] = ("af", "debit", "d", "dr")
    credit_markers: tuple[str, ...] = ("bij", "credit", "c", "cr")
    repair_decimal_comma: bool = True
    locale: LocaleConfig = Field(default_factory=LocaleConfig)

    @field_validator("delimiter")
    @classmethod
    def _known_delimiter(cls, v: str | None) -> str | None:
        if v is not None and v not in _DELIMITERS:
            raise ValueError(f"delimiter must be one of {_DELIMITERS!r}")
        return v

    @field_validator("date_format")
    @classmethod
    def _normalize_date_format(cls, v: str) -> str:
        return to_strptime_format(v)

    @field_validator("column_indices")
    @classmethod
    def _known_fields(cls, v: dict[str, int]) -> dict[str, int]:
        unknown = sorted(set(v) - set(FIELD_NAMES))
        if unknown:
            raise ValueError(f"unknown fields in column_indices: {unknown}")
        if any(i < 0 for i in v.values()):
            raise ValueError("column_indices must be non-negative")
        return v

    @property
    def date_formats(self) -> tuple[str, ...]:
        out = [self.date_format]
        out.extend(f for f in self.fallback_date_formats if f != self.date_format)
        return tuple(out)

    def aliases(self, field: str) -> tuple[str, ...]:
        return getattr(self, f"{field}_columns")


FIELD_NAMES: tuple[str, ...] = (
    "date",
    "description",
    "counterparty_name",
    "own_account",
    "counterparty_account",
    "direction",
    "amount",
    "kind",
    "notes",
    "reference",
)

REQUIRED_FIELDS: tuple[str, ...] = ("date", "amount")


def rabobank_schema() -> ImportSchema:
    """Default schema for the Dutch bank export (9 to 26 columns)."""

    return ImportSchema(name="rabobank")


class Settings(BaseModel):
    """Runtime settings resolved from environment variables."""

    model_config = ConfigDict(frozen=True)

    database_url: str | None = None
    log_level: str | None = None
    trend_tolerance: float = Field(default=0.03, ge=0.0, lt=1.0)
    import_workers: int = Field(default=1, ge=1, le=32)

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, v: str | None) -> str | None:
        if v is None:
            return None
        parse_level(v)
        return v.strip().upper()

    @classmethod
    def from_env(cls) -> Settings:
        """Read ``DATABASE_URL`` and ``SPAARAPP_*`` variables.

        Raises
        ------
        pydantic.ValidationError
            (a ``ValueError``) naming the field when a variable is set but
            malformed or out of range; unset or blank variables use defaults.
        """

        def _env(name: str) -> str | None:
            v = os.getenv(name)
            return v.strip() if v and v.strip() else None

        raw = {
            "database_url": _env("DATABASE_URL"),
            "log_level": _env("SPAARAPP_LOG_LEVEL"),
            "trend_tolerance": _env("SPAARAPP_TREND_TOLERANCE"),
            "import_workers": _env("SPAARAPP_IMPORT_WORKERS"),
        }
        return cls.model_validate({k: v for k, v in raw.items() if v is not None})


__all__ = [
    "FIELD_NAMES",
    "REQUIRED_FIELDS",
    "ImportSchema",
    "LocaleConfig",
    "Settings",
    "rabobank_schema",
    "to_strptime_format",
]
