"""Tests for services/performance.py stat calculations."""

from dataclasses import replace

import pytest

from race_edge.services.performance import (
    _safe_roi,
    _win_rate,
    calculate_betting_history,
    calculate_confidence_stats,
    calculate_session_history,
    calculate_summary,
    recent_accuracy,
)


# ---------------------------------------------------------------------------
# Pure math helpers
# ---------------------------------------------------------------------------

def test_safe_roi_zero_invested():
    assert _safe_roi(100.0, 0.0) == 0.0

def test_safe_roi_is_percent():
    assert _safe_roi(10.0, 100.0) == pytest.approx(10.0)

def test_win_rate_zero_total():
    assert _win_rate(5, 0) == 0.0

def test_win_rate():
    assert _win_rate(6, 10) == pytest.approx(60.0)


# ---------------------------------------------------------------------------
# calculate_betting_history
# ---------------------------------------------------------------------------

def test_history_of_nothing():
    history = calculate_betting_history([])
    assert history.total_races == 0
    assert history.cumulative_roi == 0.0
    assert history.last_updated is None


def test_history_totals(make_record):
    records = [
        make_record(first=0, created_at="t1"),                       # +2000
        make_record(first=1, second=0, third=2, created_at="t2"),    # -1000
        make_record(pick=None, created_at="t3"),                      # skipped
    ]
    history = calculate_betting_history(records)
    assert history.total_races == 3
    assert history.total_wins == 1
    assert history.total_profit == pytest.approx(1000.0)
    assert history.total_invested == pytest.approx(2000.0)
    assert history.cumulative_roi == pytest.approx(50.0)
    assert history.win_rate == pytest.approx(100 / 3)
    assert history.last_updated == "t3"


def test_history_counts_actual_stake_not_recommendation(make_record):
    # Operator overrode a 2000 recommendation with no wager
    unstaked = replace(make_record(first=1, second=0, third=2, stake=2000.0), stake=0.0, profit_loss=0.0)
    history = calculate_betting_history([unstaked, make_record(first=0)])
    assert history.total_invested == pytest.approx(1000.0)
    assert history.total_profit == pytest.approx(2000.0)
    assert history.cumulative_roi == pytest.approx(200.0)

    stats = calculate_confidence_stats([unstaked])
    assert stats["low"]["total_invested"] == 0.0
    assert stats["low"]["roi"] == 0.0


def test_history_equals_fold_of_parts(make_record):
    records = [make_record(first=i % 6, second=(i + 1) % 6, third=(i + 2) % 6) for i in range(12)]
    history = calculate_betting_history(records)
    assert history.total_profit == pytest.approx(sum(r.profit_loss for r in records))
    assert history.total_wins == sum(1 for r in records if r.won)


def test_session_history_starts_at_offset(make_record):
    records = [make_record(first=0)] * 3 + [make_record(first=1, second=0, third=2)] * 2
    session = calculate_session_history(records, 3)
    assert session.total_races == 2
    assert session.total_wins == 0
    # Offsets beyond the ledger give an empty session
    assert calculate_session_history(records, 99).total_races == 0


# ---------------------------------------------------------------------------
# Accuracy and segmentation
# ---------------------------------------------------------------------------

def test_recent_accuracy_window(make_record):
    records = [make_record(first=1, second=0, third=2)] * 10 + [make_record(first=0)] * 10
    assert recent_accuracy(records, 10) == 100.0
    assert recent_accuracy(records, 20) == 50.0
    assert recent_accuracy([], 10) == 0.0


def test_recent_accuracy_ignores_skips(make_record):
    records = [make_record(first=0)] * 4 + [make_record(pick=None)] * 6
    assert recent_accuracy(records, 5) == 100.0
    assert recent_accuracy([make_record(pick=None)] * 3, 10) == 0.0


def test_confidence_stats(make_record):
    records = [
        make_record(first=0, confidence="high"),
        make_record(first=1, second=0, third=2, confidence="high"),
        make_record(first=1, second=0, third=2, confidence="low"),
    ]
    stats = calculate_confidence_stats(records)
    assert stats["high"]["total_races"] == 2
    assert stats["high"]["wins"] == 1
    assert stats["high"]["roi"] == pytest.approx(50.0)
    assert stats["medium"]["total_races"] == 0
    assert stats["low"]["roi"] == pytest.approx(-100.0)


def test_summary_empty():
    assert calculate_summary([])["total_races"] == 0


def test_summary_drawdown_and_skips(make_record):
    records = [
        make_record(first=0),                        # +2000 → peak 2000
        make_record(first=1, second=0, third=2),     # -1000 → 1000
        make_record(pick=None),
    ]
    summary = calculate_summary(records)
    assert summary["max_drawdown"] == pytest.approx(0.5)
    assert summary["skipped"] == 1
    assert summary["rolling_windows"]["last_10"]["races"] == 3
