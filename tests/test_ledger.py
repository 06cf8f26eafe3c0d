"""Tests for services/ledger.py: validation, append, undo."""

from dataclasses import FrozenInstanceError, replace

import pytest

from race_edge.exceptions import StorageCorruptionError, StorageQuotaError, ValidationError
from race_edge.services.ledger import Ledger, validate_event
from race_edge.services.storage import MemoryKeyValueStore, StateRepository


@pytest.fixture
def ledger(repo):
    return Ledger(repo)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def test_valid_record_passes(make_record):
    validate_event(make_record())
    validate_event(make_record(pick=None))


@pytest.mark.parametrize("changes, field", [
    ({"odds": (2, 3, 4, 5, 8)},                      "odds"),
    ({"odds": (2, 3, 4, 5, 8, 0)},                   "odds"),
    ({"implied_probabilities": (0.2,) * 5},          "implied_probabilities"),
    ({"predicted_probabilities": (float("nan"),) * 6}, "predicted_probabilities"),
    ({"actual_second": 0},                           "actual_first"),
    ({"actual_third": 6},                            "actual_third"),
    ({"actual_first": -1},                           "actual_first"),
    ({"recommended_contender": 7},                   "recommended_contender"),
    ({"strategy_mode": "reckless"},                  "strategy_mode"),
    ({"confidence_level": "certain"},                "confidence_level"),
    ({"stake": -5.0},                                "stake"),
    ({"profit_loss": float("inf")},                  "profit_loss"),
    ({"recommended_contender": None},                "stake"),   # skip with a stake
])
def test_invalid_records_rejected(make_record, ledger, store, changes, field):
    record = replace(make_record(), **changes)
    with pytest.raises(ValidationError) as excinfo:
        ledger.append(record)
    assert excinfo.value.field == field
    assert store.get("ledger") is None


# ---------------------------------------------------------------------------
# Append / all
# ---------------------------------------------------------------------------

def test_append_stamps_creation_time(make_record, ledger):
    stored = ledger.append(make_record())
    assert stored.created_at is not None
    assert ledger.all() == (stored,)


def test_append_keeps_existing_timestamp(make_record, ledger):
    stored = ledger.append(make_record(created_at="2026-03-01T12:00:00+00:00"))
    assert stored.created_at == "2026-03-01T12:00:00+00:00"


def test_append_preserves_order(make_record, ledger):
    for winner in range(4):
        ledger.append(make_record(first=winner, second=(winner + 1) % 6, third=(winner + 2) % 6))
    assert [r.actual_first for r in ledger.all()] == [0, 1, 2, 3]
    assert len(ledger) == 4


def test_records_are_immutable(make_record, ledger):
    stored = ledger.append(make_record())
    view = ledger.all()
    assert isinstance(view, tuple)
    with pytest.raises(FrozenInstanceError):
        stored.profit_loss = 0.0


def test_caller_list_does_not_alias_record(make_record):
    odds = [2, 3, 4, 5, 8, 15]
    record = make_record(odds=odds)
    odds[0] = 99
    assert record.odds[0] == 2.0


def test_corrupted_ledger_is_not_recoverable(store, ledger):
    store.set("ledger", "{broken")
    with pytest.raises(StorageCorruptionError) as excinfo:
        ledger.all()
    assert excinfo.value.key == "ledger"


def test_quota_failure_leaves_ledger_unchanged(make_record):
    store = MemoryKeyValueStore(quota_bytes=64)
    ledger = Ledger(StateRepository(store))
    with pytest.raises(StorageQuotaError):
        ledger.append(make_record())
    assert ledger.all() == ()


# ---------------------------------------------------------------------------
# Undo
# ---------------------------------------------------------------------------

def test_undo_on_empty_ledger(ledger, store):
    assert ledger.undo_last() is False
    assert store.get("ledger") is None


def test_undo_removes_only_the_newest(make_record, ledger):
    first = ledger.append(make_record(first=0))
    ledger.append(make_record(first=3, second=4, third=5))
    assert ledger.undo_last() is True
    assert ledger.all() == (first,)
