# ruff: noqa: E501
from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from finance_tracker.client import BulkCounts
from finance_tracker.errors import PersistError
from finance_tracker.models import (
    CategorizationResult,
    ImportCandidate,
    ImportStats,
    PreprocessedTransaction,
)
from finance_tracker.persistence import BatchImporter, ImportState, reconcile_bulk_counts
from tests.helpers.api_stub import FakeBackend

# ---- Helpers -----------------------------------------------------------------


def _candidates(n: int, *, prefix: str = "Compra") -> list[ImportCandidate]:
    out = []
    for i in range(n):
        desc = f"{prefix} {i:02d}"
        tx = PreprocessedTransaction(
            date=f"2025-07-{i % 28 + 1:02d}",
            type="expense",
            amount=Decimal(10 + i),
            original_description=desc,
            cleaned_description=desc.lower(),
            tokens=("compra",),
            confidence=1.0,
        )
        out.append(ImportCandidate(tx, CategorizationResult(category="outros", confidence=0.0)))
    return out


def _run(importer: BatchImporter, candidates, **kw) -> ImportStats:
    return asyncio.run(importer.import_batch(candidates, **kw))


# ---- Strategy selection ------------------------------------------------------


def test_small_batch_is_imported_one_by_one():
    fake = FakeBackend()
    importer = BatchImporter(fake.client())
    stats = _run(importer, _candidates(3))

    assert stats == ImportStats(total=3, success=3, errors=0)
    assert fake.bulk_calls == []
    assert [c.body["descricao"] for c in fake.create_calls] == ["Compra 00", "Compra 01", "Compra 02"]
    assert importer.state is ImportState.COMPLETED
    assert not importer.used_fallback


def test_threshold_is_exclusive():
    fake = FakeBackend()
    _run(BatchImporter(fake.client()), _candidates(10))
    assert fake.bulk_calls == []
    assert len(fake.create_calls) == 10


def test_large_batch_uses_one_bulk_call():
    fake = FakeBackend()
    stats = _run(BatchImporter(fake.client()), _candidates(11))

    assert stats == ImportStats(total=11, success=11, errors=0)
    assert len(fake.bulk_calls) == 1
    assert fake.create_calls == []
    sent = fake.bulk_calls[0].body["transactions"]
    assert [t["description"] for t in sent] == [f"Compra {i:02d}" for i in range(11)]
    assert set(sent[0]) == {"date", "description", "amount", "type", "category"}


def test_custom_threshold():
    fake = FakeBackend()
    _run(BatchImporter(fake.client(), bulk_threshold=0), _candidates(1))
    assert len(fake.bulk_calls) == 1


# ---- Fallback ----------------------------------------------------------------


@pytest.mark.parametrize("mode", ["http_500", "success_false", "malformed", "connect_error"])
def test_bulk_failure_falls_back_to_sequential_import_of_all_15(mode):
    fake = FakeBackend(bulk_mode=mode)
    importer = BatchImporter(fake.client())
    cands = _candidates(15)
    stats = _run(importer, cands)

    assert stats.total == 15
    assert stats == ImportStats(total=15, success=15, errors=0)
    assert len(fake.bulk_calls) == 1
    # Every candidate attempted individually, in input order, after the bulk call
    assert [c.body["descricao"] for c in fake.create_calls] == [
        c.transaction.original_description for c in cands
    ]
    assert fake.calls[0] is fake.bulk_calls[0]
    assert importer.used_fallback


def test_sequential_failures_are_counted_and_do_not_stop_the_run():
    fake = FakeBackend(fail_create=lambda body: body["descricao"] in {"Compra 01", "Compra 03"})
    stats = _run(BatchImporter(fake.client()), _candidates(5))

    assert stats == ImportStats(total=5, success=3, errors=2)
    assert len(fake.create_calls) == 5


def test_fallback_with_partial_failures():
    fake = FakeBackend(bulk_mode="http_500", fail_create=lambda body: body["valor"] >= 20)
    stats = _run(BatchImporter(fake.client()), _candidates(12))

    assert stats == ImportStats(total=12, success=10, errors=2)


def test_bulk_and_sequential_paths_agree_on_success():
    cands = _candidates(12)
    bulk = _run(BatchImporter(FakeBackend().client()), cands)
    fallback = _run(BatchImporter(FakeBackend(bulk_mode="http_500").client()), cands)
    assert bulk == fallback == ImportStats(total=12, success=12, errors=0)


class _FlakyBackend:
    """Backend double whose calls time out for selected descriptions."""

    def __init__(self, *, bulk_exc: Exception | None = None, timeouts: tuple[str, ...] = ()):
        self.bulk_exc = bulk_exc
        self.timeouts = set(timeouts)
        self.created: list[str] = []

    async def bulk_import(self, payloads):
        if self.bulk_exc is not None:
            raise self.bulk_exc
        return BulkCounts(success=len(payloads), errors=0)

    async def create_transaction(self, candidate):
        desc = candidate.transaction.original_description
        if desc in self.timeouts:
            raise TimeoutError(f"timed out creating {desc}")
        self.created.append(desc)
        return {"id": len(self.created)}


def test_timeouts_during_sequential_import_are_counted():
    backend = _FlakyBackend(timeouts=("Compra 01",))
    stats = _run(BatchImporter(backend), _candidates(4))
    assert stats == ImportStats(total=4, success=3, errors=1)
    assert backend.created == ["Compra 00", "Compra 02", "Compra 03"]


@pytest.mark.parametrize("exc", [TimeoutError("bulk timed out"), ConnectionResetError("reset")])
def test_os_level_bulk_failure_falls_back(exc):
    backend = _FlakyBackend(bulk_exc=exc)
    importer = BatchImporter(backend)
    stats = _run(importer, _candidates(12))
    assert stats == ImportStats(total=12, success=12, errors=0)
    assert importer.used_fallback
    assert len(backend.created) == 12


def test_unexpected_backend_exceptions_propagate():
    backend = _FlakyBackend(bulk_exc=KeyError("bug"))
    with pytest.raises(KeyError):
        _run(BatchImporter(backend), _candidates(12))


# ---- Count reconciliation and totals -----------------------------------------


@pytest.mark.parametrize(
    ("reported", "expected"),
    [((12, 0), (12, 0)), ((20, 0), (12, 0)), ((5, 2), (5, 7)), ((0, 0), (0, 12)), ((-3, 0), (0, 12))],
)
def test_reconcile_bulk_counts(reported, expected):
    ok, bad = reported
    assert reconcile_bulk_counts(12, BulkCounts.model_construct(success=ok, errors=bad)) == expected


def test_inconsistent_bulk_counts_keep_conservation():
    fake = FakeBackend(bulk_mode="counts", bulk_counts=(9, 0))
    stats = _run(BatchImporter(fake.client()), _candidates(12))
    assert stats == ImportStats(total=12, success=9, errors=3)


def test_row_errors_are_part_of_total_and_errors():
    fake = FakeBackend()
    stats = _run(BatchImporter(fake.client()), _candidates(2), row_errors=3)
    assert stats == ImportStats(total=5, success=2, errors=3)


def test_empty_batch_makes_no_calls():
    fake = FakeBackend()
    assert _run(BatchImporter(fake.client()), []) == ImportStats(0, 0, 0)
    assert _run(BatchImporter(fake.client()), [], row_errors=4) == ImportStats(4, 0, 4)
    assert fake.calls == []


def test_invalid_arguments():
    with pytest.raises(ValueError):
        BatchImporter(FakeBackend().client(), bulk_threshold=-1)
    with pytest.raises(ValueError):
        _run(BatchImporter(FakeBackend().client()), [], row_errors=-1)


# ---- State machine -----------------------------------------------------------


class _RecordingBackend:
    """Backend double that records the importer's state at each call."""

    def __init__(self, *, fail_bulk: bool) -> None:
        self.fail_bulk = fail_bulk
        self.importer: BatchImporter | None = None
        self.seen: list[tuple[str, ImportState]] = []

    async def bulk_import(self, payloads):
        self.seen.append(("bulk", self.importer.state))
        if self.fail_bulk:
            raise PersistError("bulk endpoint down")
        return BulkCounts(success=len(payloads), errors=0)

    async def create_transaction(self, candidate):
        self.seen.append(("create", self.importer.state))
        await asyncio.sleep(0)
        return {"id": 1}


def test_state_transitions_with_fallback():
    backend = _RecordingBackend(fail_bulk=True)
    importer = BatchImporter(backend, bulk_threshold=1)
    backend.importer = importer
    assert importer.state is ImportState.IDLE

    _run(importer, _candidates(2))

    assert backend.seen == [
        ("bulk", ImportState.BULK_ATTEMPT),
        ("create", ImportState.SEQUENTIAL_IMPORT),
        ("create", ImportState.SEQUENTIAL_IMPORT),
    ]
    assert importer.state is ImportState.COMPLETED


def test_state_transitions_without_fallback():
    backend = _RecordingBackend(fail_bulk=False)
    importer = BatchImporter(backend, bulk_threshold=1)
    backend.importer = importer
    _run(importer, _candidates(2))
    assert backend.seen == [("bulk", ImportState.BULK_ATTEMPT)]
    assert importer.state is ImportState.COMPLETED
