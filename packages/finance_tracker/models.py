"""Data models for statement import.

Parsers emit :class:`RawRow` records (raw strings only, tagged with the dialect
that produced them). The explicit mapping step in ``preprocess.py`` validates
those into :class:`PreprocessedTransaction` instances, which the rule engine
pairs with a :class:`CategorizationResult` to form an :class:`ImportCandidate`.

Everything here is created per import and discarded once the batch importer
returns its :class:`ImportStats`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date as _date
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

TransactionType = Literal["income", "expense"]
RuleScope = Literal["income", "expense", "both"]

# Preprocessing confidence below this is reported as "low confidence".
LOW_CONFIDENCE_THRESHOLD: float = 0.7


class StatementDialect(StrEnum):
    """Input layouts recognized by the format detector."""

    BANK = "bank"
    GENERIC = "generic"


# ---------------------------------------------------------------------------
# Parser output
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawRow:
    """One statement line as produced by a parser, before any normalization.

    ``cells`` keeps every column of the line keyed by header label (or by
    positional index when a label is blank). ``date``, ``description`` and
    ``amount`` are the raw cells the parser resolved for those roles;
    ``type_marker`` is an explicit credit/debit marker when the layout has one.
    """

    dialect: StatementDialect
    line_no: int
    cells: Mapping[str, str]
    date: str
    description: str
    amount: str
    type_marker: str | None = None
    parse_confidence: float = 1.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.parse_confidence <= 1.0:
            raise ValueError("RawRow.parse_confidence must be within [0,1]")


@dataclass(frozen=True, slots=True)
class RowError:
    """A skipped statement line and why it was skipped."""

    line_no: int
    reason: str

    def __str__(self) -> str:
        return f"line {self.line_no}: {self.reason}"


# ---------------------------------------------------------------------------
# Normalized records
# ---------------------------------------------------------------------------


class PreprocessedTransaction(BaseModel):
    """A normalized transaction ready for categorization.

    ``amount`` is always a strictly positive magnitude with two decimals; the
    direction lives in ``type``. ``confidence`` scores the preprocessing itself
    (how cleanly the date, amount and description parsed) and says nothing
    about the category.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    date: str
    type: TransactionType
    amount: Decimal
    original_description: str
    cleaned_description: str
    tokens: tuple[str, ...]
    confidence: float
    line_no: int | None = None

    @field_validator("date")
    @classmethod
    def _iso_date(cls, v: str) -> str:
        try:
            parsed = _date.fromisoformat(v)
        except ValueError as exc:
            raise ValueError(f"date must be ISO-8601 (YYYY-MM-DD): {v!r}") from exc
        return parsed.isoformat()

    @field_validator("amount")
    @classmethod
    def _positive_amount(cls, v: Decimal) -> Decimal:
        q = v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        if q <= 0:
            raise ValueError("amount must be strictly positive")
        return q

    @field_validator("tokens")
    @classmethod
    def _unique_tokens(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(v)) != len(v):
            raise ValueError("tokens must not repeat")
        return v

    @field_validator("confidence")
    @classmethod
    def _unit_interval(cls, v: float) -> float:
        if 0.0 <= v <= 1.0:
            return float(v)
        raise ValueError("confidence must be within [0,1]")


@dataclass(frozen=True, slots=True)
class CategorizationResult:
    """Best-guess category for a token set.

    When nothing matched, ``category`` is the rule table's default and
    ``confidence`` is ``0.0``.
    """

    category: str
    confidence: float
    matched_tokens: frozenset[str] = frozenset()
    rule: str | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("CategorizationResult.confidence must be within [0,1]")

    @property
    def matched(self) -> bool:
        return self.rule is not None


class CategorizationRule(BaseModel):
    """A type-scoped keyword rule.

    ``tokens`` are stored already normalized by the tokenizer so that matching
    is a plain set intersection.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    name: str
    tokens: frozenset[str]
    category: str
    weight: float = 1.0
    applies_to: RuleScope = "both"

    @field_validator("tokens")
    @classmethod
    def _non_empty_tokens(cls, v: frozenset[str]) -> frozenset[str]:
        if not v:
            raise ValueError("rule must carry at least one token")
        return v

    @field_validator("category")
    @classmethod
    def _non_empty_category(cls, v: str) -> str:
        if not v:
            raise ValueError("rule category must be non-empty")
        return v

    @field_validator("weight")
    @classmethod
    def _positive_weight(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("rule weight must be positive")
        return float(v)

    def applies(self, tx_type: TransactionType) -> bool:
        return self.applies_to == "both" or self.applies_to == tx_type


class RuleTable(BaseModel):
    """An immutable, versioned set of categorization rules (declaration order)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: int
    default_category: str
    rules: tuple[CategorizationRule, ...]


# ---------------------------------------------------------------------------
# Import units and outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ImportCandidate:
    """A preprocessed, categorized transaction handed to the batch importer."""

    transaction: PreprocessedTransaction
    categorization: CategorizationResult

    def to_payload(self) -> dict[str, Any]:
        """Return the neutral wire object used by the bulk endpoint."""

        tx = self.transaction
        return {
            "date": tx.date,
            "description": tx.original_description,
            "amount": float(tx.amount),
            "type": tx.type,
            "category": self.categorization.category,
        }


@dataclass(frozen=True, slots=True)
class ImportStats:
    """Final tally of one import run; ``success + errors == total`` always."""

    total: int
    success: int
    errors: int

    def __post_init__(self) -> None:
        for name in ("total", "success", "errors"):
            val = getattr(self, name)
            if isinstance(val, bool) or not isinstance(val, int) or val < 0:
                raise ValueError(f"ImportStats.{name} must be a non-negative integer")
        if self.success + self.errors != self.total:
            raise ValueError(
                f"ImportStats out of balance: {self.success} + {self.errors} != {self.total}"
            )


@dataclass(frozen=True, slots=True)
class ParsedStatement:
    """Result of parsing one statement: candidates plus skipped rows."""

    dialect: StatementDialect
    candidates: tuple[ImportCandidate, ...]
    row_errors: tuple[RowError, ...] = ()

    @property
    def low_confidence(self) -> int:
        return sum(
            1
            for c in self.candidates
            if c.transaction.confidence < LOW_CONFIDENCE_THRESHOLD
        )


@dataclass(frozen=True, slots=True)
class ImportReport:
    """Single, final report of an import run."""

    dialect: StatementDialect
    stats: ImportStats
    row_errors: tuple[RowError, ...] = ()
    candidates: tuple[ImportCandidate, ...] = field(default=(), repr=False)
    low_confidence: int = 0


__all__ = [
    "TransactionType",
    "RuleScope",
    "LOW_CONFIDENCE_THRESHOLD",
    "StatementDialect",
    "RawRow",
    "RowError",
    "PreprocessedTransaction",
    "CategorizationResult",
    "CategorizationRule",
    "RuleTable",
    "ImportCandidate",
    "ImportStats",
    "ParsedStatement",
    "ImportReport",
]
