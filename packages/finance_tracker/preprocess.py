"""Validated mapping from parser output (:class:`RawRow`) to normalized records.

Every failure here is a :class:`~finance_tracker.errors.RowParseError`; the
pipeline turns those into row errors and keeps going.
"""

from __future__ import annotations

from datetime import date

from pydantic import ValidationError

from .errors import RowParseError
from .models import PreprocessedTransaction, RawRow, TransactionType
from .normalizers import normalize_date, parse_amount, resolve_type
from .text import clean_description, tokenize

# Confidence multipliers for degraded inputs
_FALLBACK_DATE_FACTOR = 0.5
_NO_TOKENS_FACTOR = 0.6
_SHORT_TEXT_FACTOR = 0.8
_SHORT_TEXT_LEN = 5


def preprocessing_confidence(
    parse_confidence: float,
    *,
    exact_date: bool,
    description: str,
    tokens: tuple[str, ...],
) -> float:
    """Combine parser certainty with date and description quality into [0,1]."""

    score = parse_confidence
    if not exact_date:
        score *= _FALLBACK_DATE_FACTOR
    if not tokens:
        score *= _NO_TOKENS_FACTOR
    elif len(description) <= _SHORT_TEXT_LEN:
        score *= _SHORT_TEXT_FACTOR
    return max(0.0, min(1.0, round(score, 4)))


def preprocess_row(
    row: RawRow,
    *,
    unsigned_default: TransactionType,
    date_fallback: date | None = None,
) -> PreprocessedTransaction:
    """Normalize one raw row or raise :class:`RowParseError`.

    ``unsigned_default`` is the type used when neither an explicit marker nor a
    written sign tells income from expense. ``date_fallback`` opts into
    substituting unparseable dates (at reduced confidence) instead of
    rejecting the row.
    """

    description = row.description.strip()
    if not description:
        raise RowParseError(row.line_no, "description is empty")

    try:
        iso_date, exact_date = normalize_date(row.date, fallback=date_fallback)
    except ValueError as exc:
        raise RowParseError(row.line_no, str(exc)) from exc

    try:
        amount = parse_amount(row.amount)
    except ValueError as exc:
        raise RowParseError(row.line_no, str(exc)) from exc
    if amount.is_zero:
        raise RowParseError(row.line_no, "amount cannot be zero")

    tx_type = resolve_type(amount, row.type_marker, unsigned_default=unsigned_default)
    tokens = tokenize(description)

    try:
        return PreprocessedTransaction(
            date=iso_date,
            type=tx_type,
            amount=amount.magnitude,
            original_description=description,
            cleaned_description=clean_description(description),
            tokens=tokens,
            confidence=preprocessing_confidence(
                row.parse_confidence,
                exact_date=exact_date,
                description=description,
                tokens=tokens,
            ),
            line_no=row.line_no,
        )
    except ValidationError as exc:  # pragma: no cover - guarded by the checks above
        raise RowParseError(row.line_no, f"invalid transaction: {exc}") from exc


__all__ = ["preprocess_row", "preprocessing_confidence"]
