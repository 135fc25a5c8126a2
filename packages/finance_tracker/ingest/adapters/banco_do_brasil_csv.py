"""Adapter for Banco do Brasil checking-account CSV exports.

CSV header (exact labels as exported)::

    "Data","Lançamento","Detalhes","N° documento","Valor","Tipo Lançamento"

Amounts use Brazilian formatting and carry their sign (``"-1.234,56"``);
``Tipo Lançamento`` holds ``Entrada``/``Saída`` and, when present, decides
income vs expense. Balance lines (``Saldo Anterior``, ``Saldo do dia``,
``S A L D O``, date ``00/00/0000``) are not transactions and are dropped.

Contract
--------
- Records with a column count other than six are row errors, except trailing
  records after the last well-formed one (footer/summary), which are dropped.
- Output rows have ``description = "Lançamento - Detalhes"`` and a
  ``parse_confidence`` equal to the share of the five content fields (date,
  lançamento, detalhes, valor, tipo) that are present and well formed.
"""

from __future__ import annotations

import csv
import io

from ...errors import EmptyStatementError
from ...logging_setup import get_logger
from ...models import RawRow, RowError, StatementDialect
from ...normalizers import parse_amount, parse_date, parse_type_marker
from ...text import normalize_label

# Folded labels of the first three header columns; the format detector keys on
# this triplet.
SIGNATURE: tuple[str, str, str] = ("data", "lancamento", "detalhes")

COLUMNS: tuple[str, ...] = (
    "Data",
    "Lançamento",
    "Detalhes",
    "N° documento",
    "Valor",
    "Tipo Lançamento",
)

_BALANCE_DATES = {"00/00/0000"}

_logger = get_logger("finance_tracker.ingest.banco_do_brasil")


def is_header(cells: list[str]) -> bool:
    folded = tuple(normalize_label(c) for c in cells[: len(SIGNATURE)])
    return folded == SIGNATURE


def _is_balance_line(date: str, lancamento: str) -> bool:
    if date in _BALANCE_DATES:
        return True
    return normalize_label(lancamento).replace(" ", "").startswith("saldo")


def _well_formed(date: str, lancamento: str, detalhes: str, valor: str, tipo: str) -> int:
    ok = 0
    try:
        parse_date(date)
        ok += 1
    except ValueError:
        pass
    try:
        parse_amount(valor)
        ok += 1
    except ValueError:
        pass
    ok += bool(lancamento)
    ok += bool(detalhes)
    ok += parse_type_marker(tipo) is not None
    return ok


def read_records(text: str) -> list[tuple[int, list[str]]]:
    """Split ``text`` into ``(line_no, cells)`` records, dropping blank lines.

    ``line_no`` is the physical line on which the record ends (quoted cells may
    span lines).
    """

    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    records: list[tuple[int, list[str]]] = []
    for cells in reader:
        stripped = [c.strip().strip('"').strip() for c in cells]
        if not any(stripped):
            continue
        records.append((reader.line_num, stripped))
    return records


def parse_statement(text: str) -> tuple[list[RawRow], list[RowError]]:
    """Parse a Banco do Brasil export into raw rows and row errors.

    Raises :class:`EmptyStatementError` when there is no header or no record
    after it, and ``ValueError`` when the header is not a Banco do Brasil one.
    """

    records = read_records(text)
    if not records:
        raise EmptyStatementError("statement is empty")
    _header_line, header = records[0]
    if not is_header(header):
        raise ValueError("not a Banco do Brasil export: unexpected header " + ", ".join(header))
    body = records[1:]
    if not body:
        raise EmptyStatementError("statement has a header but no data lines")

    expected = len(COLUMNS)
    labels = list(COLUMNS)
    last_good = max((i for i, (_, cells) in enumerate(body) if len(cells) == expected), default=-1)

    rows: list[RawRow] = []
    errors: list[RowError] = []
    for i, (line_no, cells) in enumerate(body):
        if len(cells) != expected:
            if i > last_good:
                _logger.debug("line %d: dropping trailing footer %r", line_no, cells)
                continue
            errors.append(RowError(line_no, f"expected {expected} columns, got {len(cells)}"))
            continue

        date, lancamento, detalhes, _documento, valor, tipo = cells
        if _is_balance_line(date, lancamento):
            continue

        description = " - ".join(p for p in (lancamento, detalhes) if p)
        ok = _well_formed(date, lancamento, detalhes, valor, tipo)
        rows.append(
            RawRow(
                dialect=StatementDialect.BANK,
                line_no=line_no,
                cells=dict(zip(labels, cells, strict=True)),
                date=date,
                description=description,
                amount=valor,
                type_marker=tipo or None,
                parse_confidence=ok / 5,
            )
        )

    _logger.debug("banco do brasil: %d rows, %d row errors", len(rows), len(errors))
    return rows, errors


__all__ = ["SIGNATURE", "COLUMNS", "is_header", "read_records", "parse_statement"]
