"""Rule-based categorization of tokenized transactions.

Scoring
-------
For each rule scoped to the transaction type (``applies_to`` equal to the type
or ``"both"``), ``score = |rule.tokens ∩ tokens| * rule.weight``. The highest
score wins; on ties the rule declared first wins. Confidence is the winning
score divided by the best score that rule could have reached for this input,
``weight * min(|rule.tokens|, |tokens|)``, capped to 1.0.

When no rule scores, the table's ``default_category`` is returned with
confidence 0. :func:`categorize` never raises.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .logging_setup import get_logger
from .models import (
    CategorizationResult,
    CategorizationRule,
    PreprocessedTransaction,
    RuleTable,
    TransactionType,
)

_logger = get_logger("finance_tracker.categorization")

HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.5


def _as_token_set(tokens: Iterable[str] | None) -> frozenset[str]:
    if tokens is None:
        return frozenset()
    if isinstance(tokens, str):
        tokens = tokens.split()
    return frozenset(t for t in tokens if isinstance(t, str) and t)


def _score(rule: CategorizationRule, tokens: frozenset[str]) -> tuple[float, frozenset[str]]:
    matched = rule.tokens & tokens
    return len(matched) * rule.weight, matched


def categorize(
    tokens: Iterable[str] | None,
    tx_type: TransactionType,
    table: RuleTable,
) -> CategorizationResult:
    """Return the best category for ``tokens`` among rules scoped to ``tx_type``.

    ``tokens`` should come from :func:`finance_tracker.text.tokenize`; a plain
    string is split on whitespace (e.g. a cleaned description).
    """

    default = CategorizationResult(category=table.default_category, confidence=0.0)
    try:
        token_set = _as_token_set(tokens)
    except TypeError:
        _logger.debug("categorize: unusable token input %r", tokens)
        return default
    if not token_set:
        return default

    best: CategorizationRule | None = None
    best_score = 0.0
    best_matched: frozenset[str] = frozenset()
    for rule in table.rules:
        if not rule.applies(tx_type):
            continue
        score, matched = _score(rule, token_set)
        # Strict ">" keeps the earliest declared rule on ties
        if score > best_score:
            best, best_score, best_matched = rule, score, matched

    if best is None:
        return default

    attainable = best.weight * min(len(best.tokens), len(token_set))
    confidence = min(1.0, best_score / attainable) if attainable > 0 else 0.0
    return CategorizationResult(
        category=best.category,
        confidence=round(confidence, 4),
        matched_tokens=best_matched,
        rule=best.name,
    )


def categorize_transaction(
    tx: PreprocessedTransaction, table: RuleTable
) -> CategorizationResult:
    return categorize(tx.tokens, tx.type, table)


def categorize_batch(
    transactions: Sequence[PreprocessedTransaction], table: RuleTable
) -> list[CategorizationResult]:
    return [categorize_transaction(tx, table) for tx in transactions]


@dataclass(frozen=True, slots=True)
class CategorizationStats:
    """Coverage summary over a batch of categorization results."""

    total: int
    categorized: int
    high_confidence: int
    medium_confidence: int
    low_confidence: int

    @property
    def uncategorized(self) -> int:
        return self.total - self.categorized

    @property
    def coverage(self) -> float:
        return self.categorized / self.total if self.total else 0.0


def categorization_stats(results: Sequence[CategorizationResult]) -> CategorizationStats:
    """Bucket results by confidence (high >= 0.8, medium >= 0.5, low > 0)."""

    return CategorizationStats(
        total=len(results),
        categorized=sum(1 for r in results if r.matched),
        high_confidence=sum(1 for r in results if r.confidence >= HIGH_CONFIDENCE),
        medium_confidence=sum(
            1 for r in results if MEDIUM_CONFIDENCE <= r.confidence < HIGH_CONFIDENCE
        ),
        low_confidence=sum(1 for r in results if 0 < r.confidence < MEDIUM_CONFIDENCE),
    )


__all__ = [
    "categorize",
    "categorize_transaction",
    "categorize_batch",
    "CategorizationStats",
    "categorization_stats",
]
