"""Error taxonomy for the ledger core.

- ``ParseError``: file-level failure (encoding, missing header, no valid
  rows). Aborts the whole import.
- ``RowError``: per-row failure record, collected by the normalizer. Not an
  exception; the internal ``RowParseError`` is converted into it.
- ``ValidationError``: invalid domain values rejected at creation time
  (e.g. a budget with ``amount <= 0``).
- ``ConsistencyError``: a ledger write would break the dedup/atomicity
  invariants. Fatal; the write is rolled back.
"""

from __future__ import annotations

from dataclasses import dataclass


class SpaarappError(Exception):
    """Base class for all errors raised by this package."""


class ParseError(SpaarappError):
    """File-level parse failure.

    When the file was readable but no row survived normalization,
    ``row_errors`` holds the per-row reasons and ``total_rows`` the number of
    data rows seen, so callers can still report them.
    """

    def __init__(
        self,
        message: str,
        *,
        row_errors: list[RowError] | None = None,
        total_rows: int = 0,
    ) -> None:
        super().__init__(message)
        self.row_errors: list[RowError] = list(row_errors or [])
        self.total_rows = total_rows


class ValidationError(SpaarappError, ValueError):
    pass


class ConsistencyError(SpaarappError):
    pass


class NotFoundError(SpaarappError, KeyError):
    def __str__(self) -> str:  # KeyError quotes its message otherwise
        return str(self.args[0]) if self.args else ""


class RowParseError(ValueError):
    """Raised while normalizing a single row; carries a human-readable reason."""


@dataclass(frozen=True, slots=True)
class RowError:
    """A rejected data row: 1-based ``row`` number and the ``reason``."""

    row: int
    reason: str


__all__ = [
    "SpaarappError",
    "ParseError",
    "ValidationError",
    "ConsistencyError",
    "NotFoundError",
    "RowParseError",
    "RowError",
]
