"""Description normalization and tokenization.

``clean_description`` turns free-text statement descriptions into a canonical,
accent-free, lowercase string of search tokens; ``tokenize`` returns the same
tokens as an ordered, de-duplicated tuple. Both are pure:

- ``clean_description(clean_description(s)) == clean_description(s)``
- ``tokenize(clean_description(s)) == tokenize(s)``

Noise removed along the way: Portuguese articles and prepositions, transaction
boilerplate (``doc``, ``ref``...), pure numbers, digit-heavy reference codes,
and tokens shorter than three characters.
"""

from __future__ import annotations

import re
import unicodedata

_MIN_TOKEN_LEN = 3

_PUNCT_RE = re.compile(r"[\W_]+", re.UNICODE)

STOP_WORDS: frozenset[str] = frozenset(
    {
        "de", "da", "do", "das", "dos", "em", "na", "no", "nas", "nos",
        "para", "por", "com", "sem", "via", "pelo", "pela", "pelos", "pelas",
        "o", "a", "os", "as", "um", "uma", "uns", "umas",
        "e", "ou", "mas", "que", "se", "como", "quando", "onde",
    }
)  # fmt: skip

# Statement boilerplate around reference numbers and document codes.
NOISE_WORDS: frozenset[str] = frozenset(
    {"doc", "docto", "documento", "ref", "referencia", "nsu", "aut", "autenticacao", "num"}
)

# Frequent misspellings seen in hand-typed descriptions (already accent-free).
TYPO_CORRECTIONS: dict[str, str] = {
    "suoermercado": "supermercado",
    "supermerkado": "supermercado",
    "restorant": "restaurante",
    "gasosa": "gasolina",
    "trasporte": "transporte",
    "pagmento": "pagamento",
    "recebimeto": "recebimento",
    "farmcia": "farmacia",
}


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _is_reference_code(token: str) -> bool:
    # Pure numbers and codes where digits make up at least half the token
    digits = sum(ch.isdigit() for ch in token)
    return digits > 0 and digits * 2 >= len(token)


def _keep(token: str) -> bool:
    return (
        len(token) >= _MIN_TOKEN_LEN
        and token not in STOP_WORDS
        and token not in NOISE_WORDS
        and not _is_reference_code(token)
    )


def _iter_tokens(text: str):
    folded = strip_accents(text.casefold()).casefold()
    for raw in _PUNCT_RE.sub(" ", folded).split():
        token = TYPO_CORRECTIONS.get(raw, raw)
        if _keep(token):
            yield token


def clean_description(text: str | None) -> str:
    """Return the cleaned, space-joined form of ``text`` (may be empty)."""

    if not text:
        return ""
    return " ".join(_iter_tokens(text))


def tokenize(text: str | None) -> tuple[str, ...]:
    """Return the ordered, de-duplicated search tokens of ``text``."""

    if not text:
        return ()
    # dict preserves first-seen order
    return tuple(dict.fromkeys(_iter_tokens(text)))


def normalize_label(text: str) -> str:
    """Fold a column label for comparisons (case, accents, spacing, quotes)."""

    folded = strip_accents(text.replace("\ufeff", "").strip().strip('"').casefold())
    return " ".join(folded.split())


__all__ = [
    "STOP_WORDS",
    "NOISE_WORDS",
    "TYPO_CORRECTIONS",
    "strip_accents",
    "clean_description",
    "tokenize",
    "normalize_label",
]
