"""Field normalizers for raw statement cells (date, amount, type marker).

Amounts
-------
Bank exports disagree on decimal separators, so :func:`parse_amount` applies a
fixed rule set:

- a comma is the decimal separator when no dot is present (``"150,50"``);
  several commas are thousands separators (``"1,234,567"``);
- otherwise the dot is the decimal separator (``"1,234.56"``, ``"150.50"``),
  except when both appear and the comma is rightmost (``"1.234,56"``);
- several dots and no comma are thousands separators (``"1.234.567"``).

Currency symbols, whitespace, and sign markers (leading/trailing ``-``/``+``,
surrounding parentheses, trailing ``C``/``D``) are stripped. The result is a
non-negative two-decimal magnitude plus the sign that was written, if any. The
transaction type is decided separately by :func:`resolve_type`.

Dates
-----
``DD/MM/YYYY`` and ``YYYY-MM-DD`` plus the common variants (``DD/MM/YY``,
``-`` or ``.`` separators, ``YYYY/MM/DD``, ``DDMMYYYY``, ``YYYYMMDD``). Dates
are calendar-validated and returned as ISO-8601 strings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Literal

from .models import TransactionType
from .text import normalize_label

# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

_CURRENCY_RE = re.compile(r"(?i)(?:r\$|us\$|brl|usd|eur|[$€£])")
_NUMBER_RE = re.compile(r"^(?:\d+(?:\.\d*)?|\.\d+)$")

_CENTS = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class ParsedAmount:
    """A parsed amount: magnitude plus the sign written in the source cell.

    ``sign`` is ``-1`` or ``+1`` when the cell carried an explicit marker and
    ``0`` when it was unsigned.
    """

    magnitude: Decimal
    sign: Literal[-1, 0, 1] = 0

    @property
    def is_zero(self) -> bool:
        return self.magnitude == 0


def _strip_sign_markers(s: str) -> tuple[str, Literal[-1, 0, 1]]:
    sign: Literal[-1, 0, 1] = 0

    # Trailing credit/debit letter as in "150,00C" or "(10,00)D"
    if len(s) > 1 and s[-1] in "cCdD" and (s[-2].isdigit() or s[-2] == ")"):
        sign = -1 if s[-1] in "dD" else 1
        s = s[:-1]

    # Strip sign and parentheses in any order until stable, e.g. "-(1.234,56)"
    # or "(R$ 10,00)-".
    while True:
        changed = False
        if s.startswith("+"):
            sign = sign or 1
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            sign = -1
            s = s[1:].lstrip()
            changed = True
        if s.endswith("-"):
            sign = -1
            s = s[:-1].rstrip()
            changed = True
        elif s.endswith("+") and len(s) > 1:
            sign = sign or 1
            s = s[:-1].rstrip()
            changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            sign = -1
            s = s[1:-1].strip()
            changed = True
        if not changed:
            break
    return s, sign


def _unify_separators(s: str) -> str:
    has_dot = "." in s
    has_comma = "," in s
    if has_dot and has_comma:
        if s.rfind(",") > s.rfind("."):
            return s.replace(".", "").replace(",", ".")
        return s.replace(",", "")
    if has_comma:
        if s.count(",") == 1:
            return s.replace(",", ".")
        return s.replace(",", "")
    if s.count(".") > 1:
        return s.replace(".", "")
    return s


def parse_amount(raw: str | None) -> ParsedAmount:
    """Parse a raw amount cell into a :class:`ParsedAmount`.

    Raises ``ValueError`` when the cell is missing, empty or not a number. A
    zero amount parses fine; rejecting it is the caller's decision.
    """

    if raw is None:
        raise ValueError("amount is required")
    s = _CURRENCY_RE.sub("", raw)
    s = "".join(s.split())
    if not s:
        raise ValueError("amount is empty")

    s, sign = _strip_sign_markers(s)
    s = _unify_separators(s.strip())

    if not _NUMBER_RE.match(s):
        raise ValueError(f"invalid amount: {raw!r}")
    try:
        # quantize raises once the digits exceed the context precision
        magnitude = abs(Decimal(s)).quantize(_CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"amount out of range: {raw!r}") from exc
    return ParsedAmount(magnitude=magnitude, sign=sign)


def format_amount(d: Decimal) -> str:
    """Two decimals, ASCII dot, no thousands separators."""

    return f"{d.quantize(_CENTS, rounding=ROUND_HALF_UP):.2f}"


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

# (pattern, field order) tried in sequence; the first calendar-valid hit wins.
_DATE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})$"), "ymd"),
    (re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})$"), "dmy"),
    (re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2})$"), "dmy"),
    (re.compile(r"^(\d{2})(\d{2})(\d{4})$"), "dmy"),
    (re.compile(r"^(\d{4})(\d{2})(\d{2})$"), "ymd"),
)


def _expand_year(y: str) -> int:
    if len(y) == 2:
        century = (date.today().year // 100) * 100
        return century + int(y)
    return int(y)


def parse_date(raw: str | None) -> str:
    """Return ``raw`` as an ISO-8601 date string or raise ``ValueError``."""

    if raw is None:
        raise ValueError("date is required")
    s = raw.strip().strip('"')
    if not s:
        raise ValueError("date is empty")
    # Drop a trailing time component ("15/07/2025 10:31", "2025-07-15T10:31:00")
    first = s.split()[0].split("T", 1)[0]

    for pattern, order in _DATE_PATTERNS:
        m = pattern.match(first)
        if not m:
            continue
        a, b, c = m.groups()
        if order == "ymd":
            y, mo, d = _expand_year(a), int(b), int(c)
        else:
            d, mo, y = int(a), int(b), _expand_year(c)
        try:
            return date(y, mo, d).isoformat()
        except ValueError:
            continue
    raise ValueError(f"invalid date: {raw!r}")


def normalize_date(raw: str | None, *, fallback: date | None = None) -> tuple[str, bool]:
    """Parse ``raw``; return ``(iso_date, exact)``.

    When parsing fails and ``fallback`` is given, the fallback date is returned
    with ``exact=False`` so callers can lower their confidence. Without a
    fallback the ``ValueError`` propagates.
    """

    try:
        return parse_date(raw), True
    except ValueError:
        if fallback is None:
            raise
        return fallback.isoformat(), False


# ---------------------------------------------------------------------------
# Transaction type
# ---------------------------------------------------------------------------

INCOME_MARKERS: frozenset[str] = frozenset(
    {"entrada", "receita", "credito", "credit", "income", "c", "cr"}
)
EXPENSE_MARKERS: frozenset[str] = frozenset(
    {"saida", "despesa", "debito", "debit", "expense", "d", "db", "dr"}
)


def parse_type_marker(marker: str | None) -> TransactionType | None:
    """Map an explicit credit/debit marker to a transaction type.

    Returns ``None`` for empty or unrecognized markers.
    """

    if not marker:
        return None
    m = normalize_label(marker)
    if not m:
        return None
    if m in INCOME_MARKERS:
        return "income"
    if m in EXPENSE_MARKERS:
        return "expense"
    # Longer labels such as "credito em conta" or "saida pix"
    words = set(m.split())
    if words & {w for w in INCOME_MARKERS if len(w) > 2}:
        return "income"
    if words & {w for w in EXPENSE_MARKERS if len(w) > 2}:
        return "expense"
    return None


def resolve_type(
    amount: ParsedAmount,
    marker: str | None,
    *,
    unsigned_default: TransactionType,
) -> TransactionType:
    """Decide income/expense from the marker, then the sign, then the default.

    The magnitude never decides, and neither does the description.
    """

    explicit = parse_type_marker(marker)
    if explicit is not None:
        return explicit
    if amount.sign < 0:
        return "expense"
    if amount.sign > 0:
        return "income"
    return unsigned_default


__all__ = [
    "ParsedAmount",
    "parse_amount",
    "format_amount",
    "parse_date",
    "normalize_date",
    "INCOME_MARKERS",
    "EXPENSE_MARKERS",
    "parse_type_marker",
    "resolve_type",
]
