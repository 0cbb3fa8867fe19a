import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from spaarapp.categorization import default_categories
from spaarapp.cli import app
from spaarapp.models import Category
from spaarapp.persistence import SqlLedgerStore
from tests.helpers.db import bootstrap_sqlite_db

runner = CliRunner()

CSV = (
    "Datum;Naam/Omschrijving;Af/Bij;Bedrag\n"
    "02-01-2024;Jumbo Utrecht;Af;125,15\n"
    "05-01-2024;Albert Heijn;Af;200,00\n"
    "25-01-2024;Salaris Werkgever BV;Bij;2.500,00\n"
)


@pytest.fixture(autouse=True)
def _in_tmp_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep a developer's .env out of the CLI's reach.
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def csv_file(tmp_path: Path) -> Path:
    p = tmp_path / "export.csv"
    p.write_text(CSV, encoding="utf-8")
    return p


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "cli.db")


def test_import_without_database_runs_in_memory(tmp_path: Path):
    p = tmp_path / "dup.csv"
    p.write_text(
        "Datum,Omschrijving,Bedrag,Af/Bij\n"
        "15-01-2024,Albert Heijn,87,45,Af\n"
        "15-01-2024,Albert Heijn,87,45,Af\n",
        encoding="utf-8",
    )

    result = runner.invoke(app, ["import-csv", "--csv-path", str(p)])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["success"] is True
    assert (payload["imported_count"], payload["duplicate_count"], payload["total_processed"]) == (1, 1, 2)
    assert len(payload["warnings"]) == 2


def test_import_into_database_is_idempotent(csv_file: Path, db_url: str):
    args = ["import-csv", "--csv-path", str(csv_file), "--database-url", db_url]

    first = runner.invoke(app, args)
    second = runner.invoke(app, args)

    assert first.exit_code == 0 and second.exit_code == 0
    assert json.loads(first.stdout)["imported_count"] == 3
    assert json.loads(second.stdout)["duplicate_count"] == 3


def test_database_url_is_read_from_dotenv(tmp_path: Path, csv_file: Path, db_url: str):
    (tmp_path / ".env").write_text(f"DATABASE_URL={db_url}\n", encoding="utf-8")

    result = runner.invoke(app, ["import-csv", "--csv-path", str(csv_file)])

    assert result.exit_code == 0, result.output
    assert len(SqlLedgerStore(db_url).load_all_transactions()) == 3


def test_import_failure_exits_non_zero(tmp_path: Path):
    p = tmp_path / "bad.csv"
    p.write_text("Datum,Omschrijving\n15-01-2024,Jumbo\n", encoding="utf-8")

    result = runner.invoke(app, ["import-csv", "--csv-path", str(p)])

    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["success"] is False
    assert "missing required columns" in payload["errors"][0]["reason"]


def test_unreadable_file_is_reported(tmp_path: Path):
    result = runner.invoke(app, ["import-csv", "--csv-path", str(tmp_path / "missing.csv")])
    assert result.exit_code == 1
    assert "cannot read" in result.output


def test_preview_lists_rows(csv_file: Path):
    result = runner.invoke(app, ["preview-csv", "--csv-path", str(csv_file), "--limit", "2"])

    assert result.exit_code == 0, result.output
    assert "delimiter=';' rows=3 errors=0" in result.output
    assert "Jumbo Utrecht" in result.output
    assert "Salaris Werkgever BV" not in result.output


def test_budget_commands_need_a_database():
    result = runner.invoke(app, ["budget-status"])
    assert result.exit_code == 1
    assert "DATABASE_URL is not set" in result.output


def test_add_budget_and_status(csv_file: Path, db_url: str):
    runner.invoke(app, ["import-csv", "--csv-path", str(csv_file), "--database-url", db_url])

    added = runner.invoke(
        app,
        [
            "add-budget",
            "--name",
            "Supermarkt",
            "--amount",
            "600.00",
            "--category",
            "supermarkt",
            "--start-date",
            "2024-01-01",
            "--database-url",
            db_url,
        ],
    )
    assert added.exit_code == 0, added.output
    budget_id = added.stdout.strip()

    status = runner.invoke(
        app, ["budget-status", "--today", "2024-01-20", "--json", "--database-url", db_url]
    )
    assert status.exit_code == 0, status.output
    (row,) = json.loads(status.stdout)
    assert row["id"] == budget_id
    assert (row["spent"], row["remaining"], row["is_active"]) == ("325.15", "274.85", True)
    assert row["threshold_crossed"] is False

    table = runner.invoke(app, ["budget-status", "--today", "2024-01-20", "--database-url", db_url])
    assert "spent=325.15 remaining=274.85 of 600.00" in table.output


def test_add_budget_rejects_invalid_input(db_url: str):
    result = runner.invoke(
        app, ["add-budget", "--name", "X", "--amount=-5", "--database-url", db_url]
    )
    assert result.exit_code == 1
    assert "positive" in result.output

    result = runner.invoke(
        app,
        ["add-budget", "--name", "X", "--amount", "5", "--category", "nope", "--database-url", db_url],
    )
    assert result.exit_code == 1
    assert "not found" in result.output


def test_analysis_prints_totals(csv_file: Path, db_url: str):
    runner.invoke(app, ["import-csv", "--csv-path", str(csv_file), "--database-url", db_url])

    result = runner.invoke(
        app, ["analysis", "--start", "2024-01-01", "--end", "2024-01-31", "--database-url", db_url]
    )

    assert result.exit_code == 0, result.output
    assert "income: 2500.00  expense: 325.15  net: 2174.85" in result.output
    assert "Supermarkt" in result.output

    bad = runner.invoke(
        app, ["analysis", "--start", "2024-02-01", "--end", "2024-01-01", "--database-url", db_url]
    )
    assert bad.exit_code == 1


def test_seed_categories_fills_a_migrated_database(db_url: str):
    SqlLedgerStore(db_url).save_category(Category(id="overig", name="Overig", is_system=True))

    result = runner.invoke(app, ["seed-categories", "--database-url", db_url])

    assert result.exit_code == 0, result.output
    assert f"added {len(default_categories()) - 1} categories" in result.output


def test_init_db_creates_schema(tmp_path: Path):
    url = f"sqlite+pysqlite:///{tmp_path / 'fresh.db'}"

    result = runner.invoke(app, ["init-db", "--database-url", url])

    assert result.exit_code == 0, result.output
    assert "schema ready" in result.output
    assert SqlLedgerStore(url).load_all_transactions() == []


@pytest.mark.parametrize(
    "name,value", [("SPAARAPP_IMPORT_WORKERS", "many"), ("SPAARAPP_TREND_TOLERANCE", "abc")]
)
def test_malformed_env_settings_fail_with_a_message(
    csv_file: Path, monkeypatch: pytest.MonkeyPatch, name, value
):
    monkeypatch.setenv(name, value)

    result = runner.invoke(app, ["import-csv", "--csv-path", str(csv_file)])

    assert result.exit_code == 1
    assert "invalid environment settings" in result.output
