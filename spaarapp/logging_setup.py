"""Logging for the ``spaarapp`` package.

Library modules call ``get_logger("spaarapp.<module>")`` and never attach
handlers; the log lines are ``area:event key=value ...`` records such as
``import:commit imported=3 duplicates=0 rejected=1 total=4``.

Entrypoints call :func:`configure_logging` with the resolved
:class:`~spaarapp.config.Settings`. It installs one stream handler on the
``spaarapp`` logger. At ``DEBUG`` it also routes SQLAlchemy's statement log
(``sqlalchemy.engine``) through that handler, so an import can be followed
from CSV row to ``INSERT``. Calling it again replaces the previous handler.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:
    from .config import Settings

_PKG_LOGGER_NAME = "spaarapp"
_SQL_LOGGER_NAME = "sqlalchemy.engine"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_handler: logging.Handler | None = None
_sql_routed = False


def parse_level(level: int | str | None) -> int:
    """Resolve ``"debug"``, ``"WARNING"`` or ``"10"`` to a numeric level.

    ``None`` means ``INFO``. Unknown names raise ``ValueError``.
    """

    if level is None:
        return logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelNamesMapping().get(name)
    if numeric is None:
        raise ValueError(f"unknown log level {level!r}")
    return numeric


def configure_logging(
    settings: Settings | None = None,
    *,
    level: int | str | None = None,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> int:
    """Install the package handler and return the effective level.

    Parameters
    ----------
    settings:
        ``settings.log_level`` is used when ``level`` is not given.
    level:
        Explicit level, as ``int`` or name. Falls back to ``INFO``.
    fmt:
        Format string; defaults to ``"%(asctime)s %(name)s %(levelname)s %(message)s"``.
    stream:
        Output stream; ``sys.stderr`` at call time when omitted.
    """

    global _handler, _sql_routed

    resolved = parse_level(level if level is not None else (settings.log_level if settings else None))
    reset_logging()

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(pkg_logger.handlers):
        if isinstance(h, logging.NullHandler):
            pkg_logger.removeHandler(h)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))
    pkg_logger.setLevel(resolved)
    pkg_logger.addHandler(handler)
    # Avoid double emission via the root logger.
    pkg_logger.propagate = False

    if resolved <= logging.DEBUG:
        sql_logger = logging.getLogger(_SQL_LOGGER_NAME)
        sql_logger.setLevel(logging.INFO)
        sql_logger.addHandler(handler)
        sql_logger.propagate = False
        _sql_routed = True

    _handler = handler
    return resolved


def reset_logging() -> None:
    """Detach the handler installed by :func:`configure_logging`, if any."""

    global _handler, _sql_routed
    if _handler is None:
        return
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    pkg_logger.removeHandler(_handler)
    pkg_logger.setLevel(logging.NOTSET)
    pkg_logger.propagate = True
    if _sql_routed:
        sql_logger = logging.getLogger(_SQL_LOGGER_NAME)
        sql_logger.removeHandler(_handler)
        sql_logger.setLevel(logging.NOTSET)
        sql_logger.propagate = True
    _handler.close()
    _handler, _sql_routed = None, False


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name with library-safe defaults.

    Until :func:`configure_logging` runs, a ``NullHandler`` sits on the package
    root logger so that embedding applications see no "No handler" warnings.
    """

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is None and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "parse_level", "reset_logging"]
