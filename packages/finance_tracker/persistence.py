"""Batch import of categorized candidates with a sequential fallback.

State machine::

    IDLE -> VALIDATING -> BULK_ATTEMPT -----> COMPLETED
                      \\            \\ (failure)
                       \\            v
                        ----> SEQUENTIAL_IMPORT -> COMPLETED

Batches larger than ``bulk_threshold`` go to the bulk endpoint in one call.
Any :class:`PersistError` (or ``OSError``, which covers ``TimeoutError``) from
that call sends the whole batch through the single-create endpoint instead,
one awaited call at a time in input order.
There are no retries beyond that single fallback.

Contract
--------
- ``ImportStats.total`` is ``len(candidates) + row_errors``; ``errors``
  includes the ``row_errors`` already counted by the parser.
- Bulk counts are reconciled against the number of candidates sent:
  over-reported successes are clamped and unaccounted candidates count as
  errors, so ``success + errors == total`` always holds.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from enum import StrEnum
from typing import Protocol

from .client import BulkCounts
from .config import DEFAULT_BULK_THRESHOLD
from .errors import PersistError
from .logging_setup import get_logger
from .models import ImportCandidate, ImportStats

# Failures of a single backend call; TimeoutError is an OSError subclass.
_CALL_ERRORS: tuple[type[Exception], ...] = (PersistError, OSError)


class ImportState(StrEnum):
    IDLE = "idle"
    VALIDATING = "validating"
    BULK_ATTEMPT = "bulk_attempt"
    SEQUENTIAL_IMPORT = "sequential_import"
    COMPLETED = "completed"


class TransactionsBackend(Protocol):
    """What the importer needs from the REST client.

    Implementations report a failed call by raising :class:`PersistError`.
    ``OSError`` and ``TimeoutError`` from a lower layer are tolerated and
    counted the same way; anything else is a bug and propagates.
    """

    async def bulk_import(self, payloads: Sequence[dict]) -> BulkCounts: ...

    async def create_transaction(self, candidate: ImportCandidate) -> object: ...


def reconcile_bulk_counts(sent: int, counts: BulkCounts) -> tuple[int, int]:
    """Return ``(success, errors)`` summing to ``sent``."""

    success = max(0, min(counts.success, sent))
    return success, sent - success


class BatchImporter:
    """Persist one batch of candidates and report :class:`ImportStats`.

    ``state`` exposes where the last run got to; an importer instance may be
    reused for several batches but runs them one at a time.
    """

    def __init__(
        self,
        client: TransactionsBackend,
        *,
        bulk_threshold: int = DEFAULT_BULK_THRESHOLD,
        logger: logging.Logger | None = None,
    ) -> None:
        if isinstance(bulk_threshold, bool) or bulk_threshold < 0:
            raise ValueError("bulk_threshold must be a non-negative integer")
        self._client = client
        self.bulk_threshold = bulk_threshold
        self._log = logger or get_logger("finance_tracker.persistence")
        self.state = ImportState.IDLE
        self.used_fallback = False

    async def import_batch(
        self, candidates: Sequence[ImportCandidate], *, row_errors: int = 0
    ) -> ImportStats:
        if isinstance(row_errors, bool) or row_errors < 0:
            raise ValueError("row_errors must be a non-negative integer")
        self.state = ImportState.VALIDATING
        self.used_fallback = False
        items = list(candidates)

        success = 0
        failures = 0
        if not items:
            self._log.info("nothing to import (%d row errors)", row_errors)
        elif len(items) > self.bulk_threshold:
            self.state = ImportState.BULK_ATTEMPT
            try:
                counts = await self._client.bulk_import([c.to_payload() for c in items])
            except _CALL_ERRORS as exc:
                self._log.warning(
                    "bulk import of %d transactions failed (%s); importing one by one",
                    len(items),
                    exc,
                )
                self.used_fallback = True
                success, failures = await self._import_sequential(items)
            else:
                success, failures = reconcile_bulk_counts(len(items), counts)
                if (success, failures) != (counts.success, counts.errors):
                    self._log.warning(
                        "bulk counts %d/%d do not match %d sent; reconciled to %d/%d",
                        counts.success,
                        counts.errors,
                        len(items),
                        success,
                        failures,
                    )
        else:
            success, failures = await self._import_sequential(items)

        self.state = ImportState.COMPLETED
        stats = ImportStats(
            total=len(items) + row_errors,
            success=success,
            errors=failures + row_errors,
        )
        self._log.info(
            "import finished: total=%d success=%d errors=%d",
            stats.total,
            stats.success,
            stats.errors,
        )
        return stats

    async def _import_sequential(self, items: Sequence[ImportCandidate]) -> tuple[int, int]:
        self.state = ImportState.SEQUENTIAL_IMPORT
        success = 0
        failures = 0
        for pos, cand in enumerate(items, start=1):
            try:
                await self._client.create_transaction(cand)
            except _CALL_ERRORS as exc:
                failures += 1
                self._log.warning(
                    "transaction %d/%d (%s, %s) failed: %s",
                    pos,
                    len(items),
                    cand.transaction.date,
                    cand.transaction.original_description,
                    exc,
                )
            else:
                success += 1
        return success, failures


__all__ = ["ImportState", "TransactionsBackend", "BatchImporter", "reconcile_bulk_counts"]
