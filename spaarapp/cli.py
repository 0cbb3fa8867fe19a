# ruff: noqa: I001
"""CLI for the ``spaarapp`` package.

A Typer console interface over :class:`~spaarapp.ledger.Ledger`. Environment
variables (``DATABASE_URL``, ``SPAARAPP_LOG_LEVEL``, ...) are loaded from a
local ``.env`` using ``python-dotenv`` before any command runs. Business logic
lives in ``spaarapp.ledger`` and the modules behind it.
"""

from __future__ import annotations

import datetime as dt
import json
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .aggregation import month_range
from .config import Settings
from .errors import NotFoundError, ParseError, SpaarappError, ValidationError
from .logging_setup import configure_logging
from .models import DateRange

if TYPE_CHECKING:
    from .ledger import Ledger


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import Dutch bank CSV exports into a categorized ledger and track budgets. "
        "Loads DATABASE_URL from a local .env before running."
    ),
)


# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,
    "--csv-path",
    help="Path to a bank CSV export",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports a readable error instead
    readable=True,
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    "--database-url", help="Override DATABASE_URL (falls back to env var)."
)


# ---- Small module-level helpers used by CLI commands -------------------------


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(1)


def _read_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise _fail(f"cannot read {path}: {e}") from e


def _settings() -> Settings:
    try:
        return Settings.from_env()
    except ValueError as e:
        raise _fail(f"invalid environment settings: {e}") from e


def _open_ledger(database_url: str | None, *, required: bool = True) -> Ledger:
    """Build a ledger on the SQL store, or in memory when no URL is configured."""

    from .ledger import Ledger
    from .persistence import SqlLedgerStore

    settings = _settings()
    url = database_url or settings.database_url
    if url is None:
        if required:
            raise _fail("DATABASE_URL is not set; pass --database-url or add it to .env")
        return Ledger(settings=settings)
    return Ledger(SqlLedgerStore(url), settings=settings)


def _parse_date(raw: str | None, what: str) -> dt.date | None:
    if raw is None:
        return None
    try:
        return dt.date.fromisoformat(raw)
    except ValueError as e:
        raise _fail(f"{what} must be YYYY-MM-DD, got {raw!r}") from e


# ---- Commands ----------------------------------------------------------------


@app.command("import-csv")
def import_csv_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Import a CSV export and print the import result as JSON.

    Without a database the import runs against an in-memory ledger, which is
    useful to check a file before committing it.
    """

    raw = _read_file(csv_path)
    ledger = _open_ledger(database_url, required=False)
    result = ledger.import_file(raw)
    typer.echo(result.model_dump_json(indent=2))
    if not result.success:
        raise typer.Exit(1)


@app.command("preview-csv")
def preview_csv_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    *,
    limit: int = typer.Option(10, min=1, help="Number of rows to show."),
) -> None:
    """Parse a CSV export without importing and show the first rows."""

    from .normalizers import preview

    try:
        batch = preview(_read_file(csv_path), limit=limit)
    except ParseError as e:
        raise _fail(str(e)) from e

    typer.echo(f"delimiter={batch.delimiter!r} rows={batch.total_rows} errors={len(batch.errors)}")
    for c in batch.candidates:
        tags = ",".join(c.tags) or "-"
        typer.echo(f"{c.source_row}\t{c.date.isoformat()}\t{c.amount:>10}\t{c.description}\t{tags}")
    for err in batch.errors:
        typer.echo(f"row {err.row}: {err.reason}", err=True)
    for w in batch.warnings:
        typer.echo(f"warning: {w}", err=True)


@app.command("budget-status")
def budget_status_cmd(
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    today: str | None = typer.Option(None, help="Reference date (YYYY-MM-DD); default today."),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of a table."),
) -> None:
    """Show current-period spend for every budget."""

    ledger = _open_ledger(database_url)
    ref = _parse_date(today, "--today")
    statuses = ledger.get_budget_status(today=ref)
    if as_json:
        typer.echo(json.dumps([s.to_dict() for s in statuses], indent=2))
        return
    if not statuses:
        typer.echo("No budgets.")
        return
    for s in statuses:
        flag = "!" if s.threshold_crossed else " "
        typer.echo(
            f"{flag} {s.budget.name:<24} {s.period_start}..{s.period_end - dt.timedelta(days=1)} "
            f"spent={s.spent:.2f} remaining={s.remaining:.2f} of {s.budget.amount:.2f} "
            f"[{s.level}]"
        )
    sts = ledger.safe_to_spend(today=ref)
    if sts is not None:
        typer.echo(f"safe-to-spend: {sts:.2f}")


@app.command("add-budget")
def add_budget_cmd(
    *,
    name: str = typer.Option(..., help="Budget name."),
    amount: str = typer.Option(..., help="Allowance per period, e.g. 600.00"),
    period: str = typer.Option("monthly", help="weekly, monthly, quarterly or yearly."),
    start_date: str | None = typer.Option(None, help="YYYY-MM-DD; default today."),
    end_date: str | None = typer.Option(None, help="Optional YYYY-MM-DD."),
    category: str | None = typer.Option(None, help="Category id; omit for an overall budget."),
    threshold: str = typer.Option("0.8", help="Notification threshold as a fraction."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Create a budget."""

    ledger = _open_ledger(database_url)
    try:
        budget = ledger.add_budget(
            name=name,
            amount=amount,
            period=period,
            start_date=start_date,
            end_date=end_date,
            category_id=category,
            notification_threshold=threshold,
        )
    except (ValidationError, NotFoundError) as e:
        raise _fail(str(e)) from e
    typer.echo(budget.id)


@app.command("analysis")
def analysis_cmd(
    *,
    start: str | None = typer.Option(None, help="Range start (YYYY-MM-DD); default month start."),
    end: str | None = typer.Option(None, help="Range end, inclusive; default month end."),
    top_n: int = typer.Option(10, min=0, help="Number of categories to list."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Income/expense totals, top categories and trend for a date range."""

    ledger = _open_ledger(database_url)
    today = dt.date.today()
    default = month_range(today.year, today.month)
    try:
        rng = DateRange(
            _parse_date(start, "--start") or default.start,
            _parse_date(end, "--end") or default.end,
        )
    except ValidationError as e:
        raise _fail(str(e)) from e

    a = ledger.get_spending_analysis(rng, top_n=top_n)
    typer.echo(f"period: {a.period_start} .. {a.period_end}")
    typer.echo(f"income: {a.total_income:.2f}  expense: {a.total_expense:.2f}  net: {a.net:.2f}")
    typer.echo(f"avg/day: {a.average_daily_spending:.2f}  trend: {a.trend}")
    for c in a.top_categories:
        typer.echo(f"  {c.category_name:<20} {c.amount:>10.2f} {c.percentage:5.1f}% ({c.transaction_count})")


@app.command("seed-categories")
def seed_categories_cmd(
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Add any missing default categories and fill keywordless system ones."""

    from .db.client import resolve_database_url
    from .ledger import seed_categories
    from .persistence import SqlLedgerStore

    settings = _settings()
    try:
        url = resolve_database_url(database_url or settings.database_url)
    except RuntimeError as e:
        raise _fail(str(e)) from e
    added = seed_categories(SqlLedgerStore(url))
    typer.echo(f"added {added} categories")


@app.command("init-db")
def init_db_cmd(
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Create the ledger tables directly (use Alembic for managed databases)."""

    from .db.client import resolve_database_url
    from .persistence import SqlLedgerStore

    settings = _settings()
    try:
        url = resolve_database_url(database_url or settings.database_url)
    except RuntimeError as e:
        raise _fail(str(e)) from e
    SqlLedgerStore(url).create_schema()
    typer.echo("schema ready")


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(_settings())

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


def main() -> None:  # pragma: no cover - console script entrypoint
    try:
        app()
    except SpaarappError as e:
        typer.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from e


if __name__ == "__main__":  # pragma: no cover
    main()
