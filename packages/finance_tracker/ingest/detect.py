"""Format detection and dispatch to the matching statement adapter.

Detection looks only at the first non-blank line: when it reads as the Banco do
Brasil header (``Data``, ``Lançamento``, ``Detalhes`` after case and accent
folding) the bank adapter is used, otherwise the generic CSV adapter.
"""

from __future__ import annotations

import csv

from ..models import RawRow, RowError, StatementDialect
from .adapters import banco_do_brasil_csv, generic_csv


def _first_line(text: str) -> str | None:
    for line in text.lstrip("\ufeff").splitlines():
        if line.strip():
            return line
    return None


def detect_dialect(text: str) -> StatementDialect:
    """Return the dialect of ``text``; never raises."""

    line = _first_line(text)
    if line is None:
        return StatementDialect.GENERIC
    try:
        cells = next(csv.reader([line]), [])
    except csv.Error:
        return StatementDialect.GENERIC
    if banco_do_brasil_csv.is_header([c.strip() for c in cells]):
        return StatementDialect.BANK
    return StatementDialect.GENERIC


def load_raw_rows(text: str) -> tuple[StatementDialect, list[RawRow], list[RowError]]:
    """Detect the dialect of ``text`` and parse it with the matching adapter."""

    dialect = detect_dialect(text)
    if dialect is StatementDialect.BANK:
        rows, errors = banco_do_brasil_csv.parse_statement(text)
    else:
        rows, errors = generic_csv.parse_statement(text)
    return dialect, rows, errors


__all__ = ["detect_dialect", "load_raw_rows"]
