"""Tests for services/prediction.py: the five-step engine."""

from dataclasses import replace

import pytest

from race_edge.core.bet_sizing import assess_confidence
from race_edge.core.records import BucketStats, BucketTable, ConfidenceLevel, ModelState
from race_edge.services.bucket_stats import rebuild_bucket_stats
from race_edge.services.prediction import bucket_signals, consistency_modifier, predict


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("variance, expected", [
    (0.0,  0.1),
    (0.25, 0.05),
    (0.5,  0.0),
    (0.75, -0.05),
    (1.0, -0.1),
    (2.0, -0.1),    # clamped
])
def test_consistency_modifier(variance, expected):
    assert consistency_modifier(variance) == pytest.approx(expected)


def test_empty_bucket_has_no_signal():
    assert bucket_signals(BucketStats()) == (0.0, 0.0, 0.0)


def test_bucket_signals_are_fractions():
    stats = BucketStats(
        total_observations=10, wins=4, actual_win_rate=40.0,
        average_implied_probability=0.3, recent_window_performance=50.0, variance_score=0.49,
    )
    win_delta, recent_delta, consistency = bucket_signals(stats)
    assert win_delta == pytest.approx(0.1)
    assert recent_delta == pytest.approx(0.5)
    assert consistency == pytest.approx(0.002)


# ---------------------------------------------------------------------------
# predict
# ---------------------------------------------------------------------------

def test_empty_ledger_leaves_implied_untouched():
    odds = [2, 3, 4, 5, 8, 15]
    table = BucketTable()
    result = predict(odds, table, ModelState())

    assert result.adjusted_probabilities == result.implied_probabilities
    assert all(e == 0.0 for e in result.value_edges)
    confidence = assess_confidence([table.get(b) for b in result.buckets], 0.0, 1.0)
    assert confidence == ConfidenceLevel.LOW


@pytest.mark.parametrize("odds", [
    [2, 3, 4, 5, 8, 15],
    [1, 1, 1, 1, 1, 1],
    [30, 30, 30, 30, 30, 30],
    [1.5, 2.2, 7.5, 11, 25, 30],
    [0.5, 100, 3, 4, 5, 6],
])
def test_adjusted_sum_to_one(odds, make_record):
    history = [make_record(first=i % 6, second=(i + 1) % 6, third=(i + 2) % 6) for i in range(40)]
    result = predict(odds, rebuild_bucket_stats(history), ModelState())
    assert sum(result.adjusted_probabilities) == pytest.approx(1.0, abs=1e-9)
    assert all(p > 0 for p in result.adjusted_probabilities)
    assert sum(result.value_edges) == pytest.approx(0.0, abs=1e-9)


def test_winning_bucket_is_upweighted(make_record):
    odds = (2, 4, 6, 8, 12, 20)
    history = [make_record(odds=odds, first=0, second=1, third=2) for _ in range(25)]
    result = predict(odds, rebuild_bucket_stats(history), ModelState())

    assert result.adjusted_probabilities[0] > result.implied_probabilities[0]
    assert result.value_edges[0] > 0
    assert result.value_edges[5] < 0


def test_zero_calibration_disables_adjustment(make_record):
    odds = (2, 4, 6, 8, 12, 20)
    history = [make_record(odds=odds, first=0, second=1, third=2) for _ in range(25)]
    state = replace(ModelState(), calibration_scalar=0.0)
    result = predict(odds, rebuild_bucket_stats(history), state)
    assert result.adjusted_probabilities == pytest.approx(result.implied_probabilities)


def test_signal_breakdown_for_contender(make_record):
    odds = (2, 4, 6, 8, 12, 20)
    history = [make_record(odds=odds, first=0, second=1, third=2) for _ in range(25)]
    table = rebuild_bucket_stats(history)
    state = ModelState()
    result = predict(odds, table, state)

    breakdown = result.signal_breakdown(0)
    fav = table.get("1-2")
    assert breakdown.contender_index == 0
    assert breakdown.odds_signal == result.implied_probabilities[0]
    assert breakdown.historical_signal == pytest.approx(
        state.weights.historical * (1.0 - fav.average_implied_probability)
    )
    assert breakdown.recent_signal == pytest.approx(state.weights.recent * 1.0)
    assert breakdown.consistency_signal == pytest.approx(state.weights.consistency * 0.1)


def test_predict_rejects_wrong_field_size():
    with pytest.raises(ValueError):
        predict([2, 3, 4, 5, 8], BucketTable(), ModelState())


def test_predict_rejects_bad_odds():
    with pytest.raises(ValueError):
        predict([2, 3, 4, 5, 8, 0], BucketTable(), ModelState())
