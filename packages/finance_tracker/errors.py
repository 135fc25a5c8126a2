"""Exception hierarchy for statement import.

Fatal conditions derive from :class:`StatementImportError`; they abort an
import before anything is persisted and are the only exceptions the public
entry points let escape. :class:`RowParseError` and :class:`PersistError` are
non-fatal: the pipeline catches them and tallies one error per row/candidate.
"""

from __future__ import annotations

from collections.abc import Sequence


class StatementImportError(Exception):
    """Base class for fatal import failures (abort, no partial stats)."""


class FileUnreadableError(StatementImportError):
    """Input bytes could not be decoded as text."""


class EmptyStatementError(StatementImportError):
    """Input holds no header row or no data lines at all."""


class RequiredColumnsMissingError(StatementImportError):
    """A generic CSV header lacks a date, description, or amount column."""

    def __init__(self, missing: Sequence[str], header: Sequence[str]) -> None:
        self.missing = tuple(missing)
        self.header = tuple(header)
        super().__init__(
            "required columns not found: "
            + ", ".join(self.missing)
            + f" (header: {', '.join(self.header) or '<empty>'})"
        )


class RowParseError(ValueError):
    """A single statement line could not be turned into a transaction."""

    def __init__(self, line_no: int, reason: str) -> None:
        self.line_no = line_no
        self.reason = reason
        super().__init__(f"line {line_no}: {reason}")


class PersistError(RuntimeError):
    """A create/bulk-create call failed (transport error or rejected response)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


__all__ = [
    "StatementImportError",
    "FileUnreadableError",
    "EmptyStatementError",
    "RequiredColumnsMissingError",
    "RowParseError",
    "PersistError",
]
