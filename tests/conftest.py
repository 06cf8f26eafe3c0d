"""Shared fixtures: an in-memory tracker and a ledger-record factory."""

import pytest

from race_edge.core.odds_math import implied_probabilities, settle_profit
from race_edge.core.records import EventRecord
from race_edge.services.race_tracker import RaceTracker
from race_edge.services.storage import MemoryKeyValueStore, StateRepository

FIELD = (2, 3, 4, 5, 8, 15)


def build_record(
    odds=FIELD,
    first=0,
    second=1,
    third=2,
    pick=0,
    stake=1000.0,
    mode="value",
    confidence="low",
    created_at=None,
    predicted=None,
):
    """A valid, settled EventRecord.  ``pick=None`` builds a skipped event."""
    implied = implied_probabilities(odds)
    predicted = list(predicted) if predicted is not None else list(implied)
    edges = [p - i for p, i in zip(predicted, implied)]
    if pick is None:
        stake, profit = 0.0, 0.0
    else:
        profit = settle_profit(stake, odds[pick], first == pick)
    return EventRecord(
        odds=odds,
        implied_probabilities=implied,
        strategy_mode=mode,
        predicted_probabilities=predicted,
        value_edges=edges,
        recommended_contender=pick,
        recommended_stake=int(stake),
        stake=stake,
        confidence_level=confidence,
        actual_first=first,
        actual_second=second,
        actual_third=third,
        profit_loss=profit,
        created_at=created_at,
    )


@pytest.fixture
def make_record():
    return build_record


@pytest.fixture
def stamped_records():
    """Factory for ``n`` records with deterministic timestamps."""
    def _make(n, **kwargs):
        return [
            build_record(created_at=f"2026-01-01T00:{i // 60:02d}:{i % 60:02d}+00:00", **kwargs)
            for i in range(n)
        ]
    return _make


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def repo(store):
    return StateRepository(store)


@pytest.fixture
def tracker(store):
    return RaceTracker(store)
