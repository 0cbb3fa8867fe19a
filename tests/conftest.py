"""Pytest configuration for test isolation.

The package reads a handful of environment variables (``DATABASE_URL``,
``SPAARAPP_*``) and a developer's local ``.env`` may set them. Tests must not
pick those up, so an autouse fixture clears them for every test. SQLAlchemy
engines are cached per URL; they are disposed after each test so temporary
SQLite files are released, and any handler a CLI invocation installed on the
``spaarapp`` logger is detached.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from spaarapp.db.client import dispose_engines
from spaarapp.logging_setup import reset_logging

_ENV_VARS = (
    "DATABASE_URL",
    "SPAARAPP_LOG_LEVEL",
    "SPAARAPP_TREND_TOLERANCE",
    "SPAARAPP_IMPORT_WORKERS",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    dispose_engines()
    reset_logging()
