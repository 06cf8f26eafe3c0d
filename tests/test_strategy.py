"""Tests for services/strategy.py: the four selection modes."""

import pytest

from race_edge.services.strategy import recommend

ODDS = [2, 3, 4, 6, 8, 15]
PROBS = [0.30, 0.22, 0.18, 0.14, 0.10, 0.06]


# ---------------------------------------------------------------------------
# Safe
# ---------------------------------------------------------------------------

def test_safe_picks_highest_probability():
    rec = recommend("safe", ODDS, PROBS, [0.0] * 6)
    assert not rec.skip
    assert rec.index == 0


def test_safe_never_skips_even_without_edge():
    rec = recommend("safe", ODDS, PROBS, [-0.05] * 6)
    assert not rec.skip
    assert rec.index == 0
    assert rec.reason


def test_ties_go_to_lowest_index():
    rec = recommend("safe", ODDS, [0.2, 0.3, 0.3, 0.1, 0.05, 0.05], [0.0] * 6)
    assert rec.index == 1


# ---------------------------------------------------------------------------
# Balanced
# ---------------------------------------------------------------------------

def test_balanced_skips_without_edge():
    rec = recommend("balanced", ODDS, PROBS, [0.02, 0.01, 0.0, -0.01, 0.0, 0.0])
    assert rec.skip
    assert rec.index is None
    assert "edge" in rec.reason


def test_balanced_blends_probability_and_edge():
    # 0.6 × 0.30 + 0.4 × 0     = 0.180
    # 0.6 × 0.22 + 0.4 × 0.15  = 0.192
    edges = [-0.01, 0.15, 0.0, 0.0, 0.0, 0.0]
    rec = recommend("balanced", ODDS, PROBS, edges)
    assert not rec.skip
    assert rec.index == 1


def test_balanced_prefers_probability_for_small_edges():
    edges = [0.0, 0.03, 0.0, 0.0, 0.0, 0.0]
    rec = recommend("balanced", ODDS, PROBS, edges)
    assert rec.index == 0


# ---------------------------------------------------------------------------
# Value
# ---------------------------------------------------------------------------

def test_value_picks_largest_edge():
    edges = [0.01, 0.03, 0.05, 0.0, 0.04, 0.0]
    rec = recommend("value", ODDS, PROBS, edges)
    assert rec.index == 2


def test_value_skips_below_threshold():
    rec = recommend("value", ODDS, PROBS, [0.019, 0.01, 0.0, 0.0, 0.0, 0.0])
    assert rec.skip


def test_value_threshold_is_inclusive():
    rec = recommend("value", ODDS, PROBS, [0.02, 0.01, 0.0, 0.0, 0.0, 0.0])
    assert not rec.skip
    assert rec.index == 0


# ---------------------------------------------------------------------------
# Aggressive
# ---------------------------------------------------------------------------

def test_aggressive_only_considers_longshots():
    # Largest edge is on the 2-to-1 favourite but it does not qualify
    edges = [0.10, 0.0, 0.0, 0.03, 0.05, 0.04]
    rec = recommend("aggressive", ODDS, PROBS, edges)
    assert rec.index == 4


def test_aggressive_excludes_exactly_five_to_one():
    rec = recommend("aggressive", [2, 3, 4, 5, 5, 5], PROBS, [0.0, 0.0, 0.0, 0.1, 0.1, 0.1])
    assert rec.skip


def test_aggressive_skips_without_qualifying_edge():
    rec = recommend("aggressive", ODDS, PROBS, [0.1, 0.1, 0.1, 0.02, 0.01, 0.0])
    assert rec.skip
    assert rec.reason


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------

def test_unknown_mode_rejected():
    with pytest.raises(ValueError):
        recommend("reckless", ODDS, PROBS, [0.0] * 6)


def test_mismatched_lengths_rejected():
    with pytest.raises(ValueError):
        recommend("safe", ODDS, PROBS[:5], [0.0] * 6)
