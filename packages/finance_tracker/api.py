"""Public entry points for statement import.

The pipeline is a plain function chain with no UI state:

``decode_statement`` / ``read_statement`` -> ``parse_statement`` (format
detection, adapters, normalization, categorization) -> ``import_batch``
(bulk-or-sequential persistence). ``import_statement`` runs parse + import and
returns one :class:`~finance_tracker.models.ImportReport`.

Only :class:`~finance_tracker.errors.StatementImportError` subclasses escape
these functions; malformed rows are collected as
:class:`~finance_tracker.models.RowError` and persistence failures are counted
in :class:`~finance_tracker.models.ImportStats`.
"""

from __future__ import annotations

import asyncio
import csv
import logging
from collections.abc import Sequence
from datetime import date
from os import PathLike
from pathlib import Path

from .categorization import categorize
from .config import DEFAULT_BULK_THRESHOLD
from .errors import FileUnreadableError, RowParseError
from .ingest.detect import load_raw_rows
from .logging_setup import get_logger
from .models import (
    ImportCandidate,
    ImportReport,
    ImportStats,
    ParsedStatement,
    RowError,
    RuleTable,
    StatementDialect,
    TransactionType,
)
from .persistence import BatchImporter, TransactionsBackend
from .preprocess import preprocess_row
from .rules import default_rule_table

# Encodings tried in order; cp1252 covers legacy bank exports saved on Windows.
_ENCODINGS: tuple[str, ...] = ("utf-8-sig", "cp1252")


def decode_statement(data: bytes) -> str:
    """Decode raw statement bytes or raise :class:`FileUnreadableError`."""

    if b"\x00" in data:
        raise FileUnreadableError("input looks binary (NUL bytes), not a text export")
    for enc in _ENCODINGS:
        try:
            return data.decode(enc)
        except UnicodeDecodeError:
            continue
    raise FileUnreadableError("input is not valid UTF-8 or Windows-1252 text")


async def read_statement(path: str | PathLike[str]) -> str:
    """Read and decode a statement file without blocking the event loop."""

    p = Path(path)
    try:
        data = await asyncio.to_thread(p.read_bytes)
    except OSError as exc:
        raise FileUnreadableError(f"cannot read {p}: {exc.strerror or exc}") from exc
    return decode_statement(data)


def _unsigned_default(
    dialect: StatementDialect, generic_default: TransactionType
) -> TransactionType:
    # Bank exports write the sign on every debit; unsigned values are credits.
    if dialect is StatementDialect.BANK:
        return "income"
    return generic_default


def parse_statement(
    text: str,
    *,
    rules: RuleTable | None = None,
    date_fallback: date | None = None,
    unsigned_type: TransactionType = "expense",
    logger: logging.Logger | None = None,
) -> ParsedStatement:
    """Parse ``text`` into categorized import candidates.

    Parameters
    ----------
    rules:
        Rule table to categorize with; the bundled table when ``None``.
    date_fallback:
        Substitute for unparseable dates. Rows using it keep going at half the
        preprocessing confidence; without it they become row errors.
    unsigned_type:
        Type given to unsigned generic-CSV amounts without a type column.
    logger:
        Destination for progress messages (package logger by default).

    Raises
    ------
    EmptyStatementError, RequiredColumnsMissingError, FileUnreadableError
        The statement cannot be imported at all.
    """

    log = logger or get_logger("finance_tracker.api")
    table = rules if rules is not None else default_rule_table()

    try:
        dialect, raw_rows, row_errors = load_raw_rows(text)
    except csv.Error as exc:
        raise FileUnreadableError(f"statement is not readable as CSV: {exc}") from exc
    errors: list[RowError] = list(row_errors)
    candidates: list[ImportCandidate] = []
    unsigned_default = _unsigned_default(dialect, unsigned_type)

    for row in raw_rows:
        try:
            tx = preprocess_row(row, unsigned_default=unsigned_default, date_fallback=date_fallback)
        except RowParseError as exc:
            errors.append(RowError(exc.line_no, exc.reason))
            continue
        candidates.append(ImportCandidate(tx, categorize(tx.tokens, tx.type, table)))

    errors.sort(key=lambda e: e.line_no)
    parsed = ParsedStatement(
        dialect=dialect, candidates=tuple(candidates), row_errors=tuple(errors)
    )
    log.info(
        "parsed %s statement: %d candidates, %d row errors, %d low confidence",
        dialect.value,
        len(candidates),
        len(errors),
        parsed.low_confidence,
    )
    for err in errors:
        log.debug("skipped %s", err)
    return parsed


async def import_batch(
    candidates: Sequence[ImportCandidate],
    *,
    client: TransactionsBackend,
    row_errors: int = 0,
    bulk_threshold: int = DEFAULT_BULK_THRESHOLD,
    logger: logging.Logger | None = None,
) -> ImportStats:
    """Persist ``candidates`` (bulk when more than ``bulk_threshold``)."""

    importer = BatchImporter(client, bulk_threshold=bulk_threshold, logger=logger)
    return await importer.import_batch(candidates, row_errors=row_errors)


async def import_statement(
    text: str,
    *,
    client: TransactionsBackend,
    rules: RuleTable | None = None,
    date_fallback: date | None = None,
    unsigned_type: TransactionType = "expense",
    bulk_threshold: int = DEFAULT_BULK_THRESHOLD,
    logger: logging.Logger | None = None,
) -> ImportReport:
    """Parse ``text`` and import every candidate; returns the final report."""

    parsed = parse_statement(
        text,
        rules=rules,
        date_fallback=date_fallback,
        unsigned_type=unsigned_type,
        logger=logger,
    )
    stats = await import_batch(
        parsed.candidates,
        client=client,
        row_errors=len(parsed.row_errors),
        bulk_threshold=bulk_threshold,
        logger=logger,
    )
    return ImportReport(
        dialect=parsed.dialect,
        stats=stats,
        row_errors=parsed.row_errors,
        candidates=parsed.candidates,
        low_confidence=parsed.low_confidence,
    )


__all__ = [
    "decode_statement",
    "read_statement",
    "parse_statement",
    "import_batch",
    "import_statement",
]
