"""Adapter for arbitrary delimited exports with a header row.

The delimiter is sniffed among ``, ; TAB |`` and the date, description and
amount columns are located by matching header names against Portuguese and
English synonyms. An optional type column (``tipo``/``type``) supplies an
explicit income/expense marker.

Column resolution
-----------------
Each role scans the header left to right twice: first for a label that is
exactly one of the role's names (``Data``, ``Histórico``...), then for a
label with a word starting with one of its stems (``Data Lançamento``,
``Valor (R$)``). The first column found wins and is not offered to later
roles. Roles resolve in the order date, amount, description, type.

Failure modes
-------------
- Any of date/description/amount unresolved:
  :class:`~finance_tracker.errors.RequiredColumnsMissingError`, raised before a
  single data row is looked at.
- No header, or a header without data lines:
  :class:`~finance_tracker.errors.EmptyStatementError`.
- Data rows with fewer columns than the header become row errors; extra
  columns are ignored. Blank lines are skipped without counting as errors.
"""

from __future__ import annotations

import csv
import io
import re
from collections.abc import Sequence
from dataclasses import dataclass

from ...errors import EmptyStatementError, RequiredColumnsMissingError
from ...logging_setup import get_logger
from ...models import RawRow, RowError, StatementDialect
from ...normalizers import parse_amount, parse_date
from ...text import normalize_label

DELIMITERS: tuple[str, ...] = (",", ";", "\t", "|")
_SNIFF_LINES = 5

# Stems matched against the start of each word of a folded header label (no
# accents, lower case).
DATE_SYNONYMS: tuple[str, ...] = ("data", "date", "dia")
DESCRIPTION_SYNONYMS: tuple[str, ...] = (
    "descri",
    "description",
    "historico",
    "estabelecimento",
    "lancamento",
    "memo",
    "detalhe",
)
AMOUNT_SYNONYMS: tuple[str, ...] = ("valor", "amount", "quantia", "montante", "value")
TYPE_SYNONYMS: tuple[str, ...] = ("tipo", "type", "natureza")

# Whole labels that name a role outright; checked before any stem match.
DATE_NAMES: frozenset[str] = frozenset({"data", "date", "dt", "dia", "when"})
DESCRIPTION_NAMES: frozenset[str] = frozenset(
    {"descricao", "description", "desc", "historico", "memo", "detail", "detalhes"}
)
AMOUNT_NAMES: frozenset[str] = frozenset(
    {"valor", "value", "amount", "quantia", "montante", "vlr"}
)
TYPE_NAMES: frozenset[str] = frozenset({"tipo", "type", "natureza"})

_WORD_SPLIT_RE = re.compile(r"[^0-9a-z]+")

_logger = get_logger("finance_tracker.ingest.generic_csv")


@dataclass(frozen=True, slots=True)
class ColumnMapping:
    """Resolved column indexes for the roles the pipeline needs."""

    date: int
    description: int
    amount: int
    type: int | None = None


def detect_delimiter(text: str) -> str:
    """Pick the delimiter yielding the most columns over the first lines.

    Only lines that split into more than one column count toward the average;
    ties keep the earlier delimiter, and ``","`` is the default.
    """

    sample = [ln for ln in text.splitlines() if ln.strip()][:_SNIFF_LINES]
    best, best_avg = ",", 0.0
    for delim in DELIMITERS:
        widths = [len(cells) for cells in csv.reader(sample, delimiter=delim)]
        multi = [w for w in widths if w > 1]
        avg = sum(multi) / len(multi) if multi else 0.0
        if avg > best_avg:
            best, best_avg = delim, avg
    return best


def _label_words(label: str) -> list[str]:
    return [w for w in _WORD_SPLIT_RE.split(label) if w]


def _find_column(
    folded: Sequence[str],
    names: frozenset[str],
    stems: Sequence[str],
    claimed: set[int],
) -> int | None:
    open_cols = [(idx, label) for idx, label in enumerate(folded) if idx not in claimed]
    for idx, label in open_cols:
        if label in names:
            return idx
    for idx, label in open_cols:
        words = _label_words(label)
        if any(w.startswith(stem) for w in words for stem in stems):
            return idx
    return None


def map_columns(header: Sequence[str]) -> ColumnMapping:
    """Resolve role columns from ``header`` or raise ``RequiredColumnsMissingError``."""

    folded = [normalize_label(h) for h in header]
    claimed: set[int] = set()
    found: dict[str, int | None] = {}
    for role, names, stems in (
        ("date", DATE_NAMES, DATE_SYNONYMS),
        ("amount", AMOUNT_NAMES, AMOUNT_SYNONYMS),
        ("description", DESCRIPTION_NAMES, DESCRIPTION_SYNONYMS),
        ("type", TYPE_NAMES, TYPE_SYNONYMS),
    ):
        idx = _find_column(folded, names, stems, claimed)
        found[role] = idx
        if idx is not None:
            claimed.add(idx)

    missing = [r for r in ("date", "description", "amount") if found[r] is None]
    if missing:
        raise RequiredColumnsMissingError(missing, header)
    return ColumnMapping(
        date=found["date"],  # type: ignore[arg-type]
        description=found["description"],  # type: ignore[arg-type]
        amount=found["amount"],  # type: ignore[arg-type]
        type=found["type"],
    )


def _cell_keys(header: Sequence[str]) -> list[str]:
    keys: list[str] = []
    for idx, label in enumerate(header):
        key = label or str(idx)
        if key in keys:
            key = f"{key}#{idx}"
        keys.append(key)
    return keys


def _row_confidence(date: str, description: str, amount: str) -> float:
    ok = bool(description)
    for parse, raw in ((parse_date, date), (parse_amount, amount)):
        try:
            parse(raw)
            ok += 1
        except ValueError:
            pass
    return ok / 3


def parse_statement(text: str) -> tuple[list[RawRow], list[RowError]]:
    """Parse a generic delimited export into raw rows and row errors."""

    delimiter = detect_delimiter(text)
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")), delimiter=delimiter)

    header: list[str] | None = None
    mapping: ColumnMapping | None = None
    keys: list[str] = []
    rows: list[RawRow] = []
    errors: list[RowError] = []
    seen_data = False

    for cells in reader:
        stripped = [c.strip().strip('"').strip() for c in cells]
        if not any(stripped):
            continue
        if header is None:
            header = stripped
            mapping = map_columns(header)
            keys = _cell_keys(header)
            _logger.debug("generic csv: delimiter=%r mapping=%s", delimiter, mapping)
            continue

        assert mapping is not None
        seen_data = True
        line_no = reader.line_num
        if len(stripped) < len(header):
            errors.append(
                RowError(line_no, f"expected {len(header)} columns, got {len(stripped)}")
            )
            continue

        date = stripped[mapping.date]
        description = stripped[mapping.description]
        amount = stripped[mapping.amount]
        marker = stripped[mapping.type] if mapping.type is not None else ""
        rows.append(
            RawRow(
                dialect=StatementDialect.GENERIC,
                line_no=line_no,
                cells=dict(zip(keys, stripped)),
                date=date,
                description=description,
                amount=amount,
                type_marker=marker or None,
                parse_confidence=_row_confidence(date, description, amount),
            )
        )

    if header is None:
        raise EmptyStatementError("statement is empty")
    if not seen_data:
        raise EmptyStatementError("statement has a header but no data lines")

    _logger.debug("generic csv: %d rows, %d row errors", len(rows), len(errors))
    return rows, errors


__all__ = [
    "DELIMITERS",
    "DATE_SYNONYMS",
    "DESCRIPTION_SYNONYMS",
    "AMOUNT_SYNONYMS",
    "TYPE_SYNONYMS",
    "DATE_NAMES",
    "DESCRIPTION_NAMES",
    "AMOUNT_NAMES",
    "TYPE_NAMES",
    "ColumnMapping",
    "detect_delimiter",
    "map_columns",
    "parse_statement",
]
