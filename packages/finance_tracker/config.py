"""Runtime settings resolved from the environment.

The CLI loads a local ``.env`` (``python-dotenv``, never overriding variables
that are already set) before calling :meth:`Settings.from_env`. Library callers
may build :class:`Settings` directly.

Variables
---------
``FT_API_BASE_URL``   backend base URL (default ``http://localhost:3001``)
``FT_API_TOKEN``      bearer token sent with every request (optional)
``FT_HTTP_TIMEOUT``   per-request timeout in seconds (default ``30``)
``FT_BULK_THRESHOLD`` batches larger than this try the bulk endpoint (default ``10``)
``FT_RULES_FILE``     JSON rule table overriding the bundled one (optional)
``FT_UNSIGNED_TYPE``  type for unsigned generic-CSV amounts (default ``expense``)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .logging_setup import get_logger
from .models import TransactionType

DEFAULT_API_BASE_URL = "http://localhost:3001"
DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_BULK_THRESHOLD = 10

_logger = get_logger("finance_tracker.config")


def _env_str(name: str) -> str | None:
    val = os.getenv(name)
    if val is None:
        return None
    val = val.strip()
    return val or None


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        val = float(raw)
    except ValueError:
        _logger.warning("ignoring %s=%r (not a number)", name, raw)
        return default
    if val <= 0:
        _logger.warning("ignoring %s=%r (must be positive)", name, raw)
        return default
    return val


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        val = int(raw)
    except ValueError:
        _logger.warning("ignoring %s=%r (not an integer)", name, raw)
        return default
    if val < 0:
        _logger.warning("ignoring %s=%r (must be >= 0)", name, raw)
        return default
    return val


@dataclass(frozen=True, slots=True)
class Settings:
    api_base_url: str = DEFAULT_API_BASE_URL
    api_token: str | None = None
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    bulk_threshold: int = DEFAULT_BULK_THRESHOLD
    rules_file: Path | None = None
    unsigned_type: TransactionType = "expense"

    def __post_init__(self) -> None:
        if not self.api_base_url.strip():
            raise ValueError("Settings.api_base_url must be non-empty")
        if self.http_timeout <= 0:
            raise ValueError("Settings.http_timeout must be positive")
        if isinstance(self.bulk_threshold, bool) or self.bulk_threshold < 0:
            raise ValueError("Settings.bulk_threshold must be a non-negative integer")
        if self.unsigned_type not in ("income", "expense"):
            raise ValueError("Settings.unsigned_type must be 'income' or 'expense'")

    @classmethod
    def from_env(cls) -> Settings:
        unsigned = (_env_str("FT_UNSIGNED_TYPE") or "expense").lower()
        if unsigned not in ("income", "expense"):
            _logger.warning("ignoring FT_UNSIGNED_TYPE=%r (expected income/expense)", unsigned)
            unsigned = "expense"
        rules = _env_str("FT_RULES_FILE")
        return cls(
            api_base_url=_env_str("FT_API_BASE_URL") or DEFAULT_API_BASE_URL,
            api_token=_env_str("FT_API_TOKEN"),
            http_timeout=_env_float("FT_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            bulk_threshold=_env_int("FT_BULK_THRESHOLD", DEFAULT_BULK_THRESHOLD),
            rules_file=Path(rules).expanduser() if rules else None,
            unsigned_type=unsigned,  # type: ignore[arg-type]
        )


__all__ = ["Settings", "DEFAULT_API_BASE_URL", "DEFAULT_BULK_THRESHOLD"]
