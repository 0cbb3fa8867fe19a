import datetime as dt
import io
import logging
from decimal import Decimal
from pathlib import Path

import pydantic
import pytest

from spaarapp.config import Settings
from spaarapp.logging_setup import configure_logging, get_logger, parse_level
from spaarapp.models import Transaction
from spaarapp.persistence import SqlLedgerStore
from tests.helpers.db import bootstrap_sqlite_db


@pytest.mark.parametrize(
    "raw,expected",
    [(None, logging.INFO), ("debug", logging.DEBUG), (" WARNING ", logging.WARNING), ("15", 15), (30, 30)],
)
def test_parse_level(raw, expected):
    assert parse_level(raw) == expected


def test_unknown_level_is_rejected_by_settings():
    with pytest.raises(ValueError, match="unknown log level"):
        parse_level("loud")
    with pytest.raises(pydantic.ValidationError, match="log_level"):
        Settings(log_level="loud")
    assert Settings(log_level=" debug ").log_level == "DEBUG"


def test_settings_level_drives_package_logger():
    buf = io.StringIO()

    level = configure_logging(Settings(log_level="warning"), stream=buf)
    get_logger("spaarapp.ledger").info("ledger:category_added id=x")
    get_logger("spaarapp.ledger").warning("import:parse_failed reason=x")

    assert level == logging.WARNING
    assert "import:parse_failed" in buf.getvalue()
    assert "category_added" not in buf.getvalue()


def test_reconfiguring_replaces_the_handler():
    first, second = io.StringIO(), io.StringIO()

    configure_logging(level="INFO", stream=first)
    configure_logging(level="INFO", stream=second)
    get_logger("spaarapp.budgets").info("budgets:threshold_crossed count=1 ids=b1")

    assert first.getvalue() == ""
    assert "budgets:threshold_crossed" in second.getvalue()
    assert len(logging.getLogger("spaarapp").handlers) == 1


def test_debug_level_logs_sql_statements(tmp_path: Path):
    store = SqlLedgerStore(bootstrap_sqlite_db(tmp_path / "ledger.db"))
    buf = io.StringIO()

    configure_logging(level="DEBUG", stream=buf)
    store.append_transactions(
        [Transaction(id="a", date=dt.date(2024, 1, 15), amount=Decimal("-1.00"), description="x")]
    )

    assert "INSERT INTO ledger_transactions" in buf.getvalue()

    configure_logging(level="INFO", stream=buf)
    assert not logging.getLogger("sqlalchemy.engine").handlers
