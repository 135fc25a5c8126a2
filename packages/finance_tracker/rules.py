"""Loading of the categorization rule table.

Rule tables are versioned JSON documents::

    {
      "version": 1,
      "default_category": "outros",
      "rules": [
        {"name": "transporte", "keywords": ["uber", "posto"],
         "category": "transporte", "weight": 0.9, "applies_to": "expense"}
      ]
    }

Keywords go through the same tokenizer as statement descriptions, so
``"Farmácia"`` and ``"farmacia"`` are the same keyword and a multi-word keyword
contributes each of its tokens. The bundled table
(``seeds/categorization_rules.v1.json``) is read once per process; callers can
pass their own table anywhere a ``RuleTable`` is accepted.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from functools import lru_cache
from importlib import resources
from os import PathLike
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from .logging_setup import get_logger
from .models import CategorizationRule, RuleScope, RuleTable
from .text import tokenize

_BUNDLED_RULES = "categorization_rules.v1.json"

_logger = get_logger("finance_tracker.rules")


class _RuleDoc(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    name: str
    keywords: list[str]
    category: str
    weight: float = 1.0
    applies_to: RuleScope = "both"


class _RuleTableDoc(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    version: int
    default_category: str
    rules: list[_RuleDoc]


def rule_table_from_mapping(data: Mapping[str, Any]) -> RuleTable:
    """Validate a decoded rule document and build a :class:`RuleTable`.

    Raises ``ValueError`` on schema problems, on rules whose keywords all
    normalize away, and on duplicate rule names.
    """

    try:
        doc = _RuleTableDoc.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"invalid rule table: {exc}") from exc
    if not doc.default_category:
        raise ValueError("invalid rule table: default_category must be non-empty")

    rules: list[CategorizationRule] = []
    seen: set[str] = set()
    for pos, r in enumerate(doc.rules):
        if r.name in seen:
            raise ValueError(f"invalid rule table: duplicate rule name {r.name!r}")
        seen.add(r.name)
        tokens: dict[str, None] = {}
        for kw in r.keywords:
            tokens.update(dict.fromkeys(tokenize(kw)))
        if not tokens:
            raise ValueError(
                f"invalid rule table: rule #{pos} ({r.name!r}) has no usable keywords"
            )
        try:
            rules.append(
                CategorizationRule(
                    name=r.name,
                    tokens=frozenset(tokens),
                    category=r.category,
                    weight=r.weight,
                    applies_to=r.applies_to,
                )
            )
        except ValidationError as exc:
            raise ValueError(f"invalid rule table: rule {r.name!r}: {exc}") from exc

    return RuleTable(
        version=doc.version,
        default_category=doc.default_category,
        rules=tuple(rules),
    )


def load_rule_table(path: str | PathLike[str] | None = None) -> RuleTable:
    """Load a rule table from ``path``, or the bundled one when ``None``."""

    if path is None:
        return default_rule_table()
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, Mapping):
        raise ValueError("Rule table JSON must be an object")
    table = rule_table_from_mapping(data)
    _logger.info("loaded rule table v%d from %s (%d rules)", table.version, p, len(table.rules))
    return table


@lru_cache(maxsize=1)
def default_rule_table() -> RuleTable:
    """Return the bundled rule table (parsed once per process)."""

    text = resources.files("finance_tracker.seeds").joinpath(_BUNDLED_RULES).read_text(
        encoding="utf-8"
    )
    return rule_table_from_mapping(json.loads(text))


__all__ = ["rule_table_from_mapping", "load_rule_table", "default_rule_table"]
