"""Logging for the ``finance_tracker`` package.

Import diagnostics (skipped rows, bulk fallbacks, reconciled counts) go through
loggers under ``"finance_tracker"``. The package never prints through logging
on its own: until :func:`configure_logging` runs, the package logger only
carries a ``NullHandler``. The CLI calls :func:`configure_logging` from its
root callback; embedding hosts either do the same or pass their own
``logging.Logger`` to the pipeline functions.

``FT_LOG_LEVEL`` picks the level (name such as ``DEBUG`` or a number) when the
caller does not.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

PACKAGE_LOGGER = "finance_tracker"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_handler: logging.Handler | None = None


def resolve_level(value: int | str | None, default: int = logging.INFO) -> int:
    """Turn ``value`` (number, numeric string or level name) into a level.

    Unknown names and ``None`` give ``default``.
    """

    if isinstance(value, int):
        return value
    if not value or not value.strip():
        return default
    text = value.strip().upper()
    if text.isdigit():
        return int(text)
    return logging.getLevelNamesMapping().get(text, default)


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Send package log records to ``stream`` (stderr by default).

    Only the first call installs a handler; later calls return the package
    logger untouched. ``level`` wins over ``FT_LOG_LEVEL``; without either the
    level is ``INFO``.
    """

    global _handler
    pkg = logging.getLogger(PACKAGE_LOGGER)
    if _handler is not None:
        return pkg

    if level is None:
        resolved = resolve_level(os.getenv("FT_LOG_LEVEL"))
    else:
        resolved = resolve_level(level, default=resolve_level(os.getenv("FT_LOG_LEVEL")))

    for existing in [h for h in pkg.handlers if isinstance(h, logging.NullHandler)]:
        pkg.removeHandler(existing)

    _handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    _handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    _handler.setLevel(resolved)
    pkg.addHandler(_handler)
    pkg.setLevel(resolved)
    # Records stop here so a host's root handlers don't print them twice
    pkg.propagate = False
    return pkg


def get_logger(name: str) -> logging.Logger:
    """Logger for a ``finance_tracker.*`` module, silent until configured."""

    pkg = logging.getLogger(PACKAGE_LOGGER)
    if _handler is None and not pkg.handlers:
        pkg.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["PACKAGE_LOGGER", "resolve_level", "configure_logging", "get_logger"]
