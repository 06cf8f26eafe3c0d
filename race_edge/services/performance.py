"""
Performance analytics computation.

All public functions receive a sequence of ledger events and return plain
values so they can be called from the rebuild, the tracker or FastAPI
endpoints without touching storage.

Percentages follow the ledger convention: ROI and win rate are reported
in percent (12.5 means 12.5%).
"""

import logging
from typing import Dict, List, Optional, Sequence

from race_edge.core.records import BettingHistory, ConfidenceLevel, EventRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _safe_roi(profit: float, invested: float) -> float:
    return profit / invested * 100.0 if invested > 0 else 0.0


def _win_rate(wins: int, total: int) -> float:
    return wins / total * 100.0 if total > 0 else 0.0


def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def _invested(record: EventRecord) -> float:
    return float(record.stake)


# ---------------------------------------------------------------------------
# calculate_betting_history
# ---------------------------------------------------------------------------

def calculate_betting_history(records: Sequence[EventRecord]) -> BettingHistory:
    """
    Cumulative totals as a pure fold over ``records``.

    A race counts as won when the recommended contender finished first.
    ``last_updated`` is the timestamp of the newest record, so folding the
    same records twice gives an identical result.
    """
    if not records:
        return BettingHistory()

    total_profit = 0.0
    total_invested = 0.0
    total_wins = 0
    for record in records:
        total_profit += record.profit_loss
        total_invested += _invested(record)
        if record.won:
            total_wins += 1

    return BettingHistory(
        total_races=len(records),
        total_wins=total_wins,
        total_profit=total_profit,
        total_invested=total_invested,
        cumulative_roi=_safe_roi(total_profit, total_invested),
        win_rate=_win_rate(total_wins, len(records)),
        last_updated=records[-1].created_at,
    )


def calculate_session_history(records: Sequence[EventRecord], session_start: int) -> BettingHistory:
    """Betting history of the current session (events after a soft reset)."""
    start = max(0, min(session_start, len(records)))
    return calculate_betting_history(records[start:])


# ---------------------------------------------------------------------------
# Accuracy and segmentation
# ---------------------------------------------------------------------------

def recent_accuracy(records: Sequence[EventRecord], window_size: int = 10) -> float:
    """Recommended-contender win rate over the last ``window_size`` events, percent.

    Skipped events carry no pick and are left out of the window.
    """
    picks = [r for r in records if r.recommended_contender is not None]
    if not picks or window_size <= 0:
        return 0.0
    window = picks[-window_size:]
    wins = sum(1 for r in window if r.won)
    return _win_rate(wins, len(window))


def calculate_confidence_stats(records: Sequence[EventRecord]) -> Dict[str, Dict]:
    """
    Totals segmented by the confidence level recorded on each event.

    Returns:
        {"high": {...}, "medium": {...}, "low": {...}} each with
        total_races, wins, total_profit, total_invested, roi, win_rate.
    """
    groups: Dict[str, List[EventRecord]] = {level.value: [] for level in ConfidenceLevel}
    for record in records:
        groups.setdefault(record.confidence_level, []).append(record)

    segments = {}
    for level, grp in groups.items():
        wins = sum(1 for r in grp if r.won)
        profit = sum(r.profit_loss for r in grp)
        invested = sum(_invested(r) for r in grp)
        segments[level] = {
            "total_races": len(grp),
            "wins": wins,
            "total_profit": round(profit, 2),
            "total_invested": round(invested, 2),
            "roi": round(_safe_roi(profit, invested), 4),
            "win_rate": round(_win_rate(wins, len(grp)), 4),
        }
    return segments


def calculate_summary(records: Sequence[EventRecord]) -> Dict:
    """
    Dashboard summary: overall history plus rolling windows and drawdown.
    """
    history = calculate_betting_history(records)
    if not records:
        return {"message": "No events logged yet", "total_races": 0}

    # Peak-to-trough drawdown
    running = peak = max_dd = 0.0
    for r in records:
        running += r.profit_loss
        if running > peak:
            peak = running
        if peak > 0:
            dd = (peak - running) / peak
            if dd > max_dd:
                max_dd = dd

    def _window(n: int) -> Dict:
        w = records[-n:]
        w_hist = calculate_betting_history(w)
        return {
            "races": w_hist.total_races,
            "win_rate": round(w_hist.win_rate, 4),
            "roi": round(w_hist.cumulative_roi, 4),
        }

    edges = [r.value_edges[r.recommended_contender] for r in records if r.recommended_contender is not None]
    mean_edge = _mean(edges)

    return {
        "overall": history.to_dict(),
        "max_drawdown": round(max_dd, 4),
        "mean_edge": round(mean_edge, 5) if mean_edge is not None else None,
        "skipped": sum(1 for r in records if r.recommended_contender is None),
        "rolling_windows": {
            "last_10": _window(10),
            "last_20": _window(20),
            "last_50": _window(50),
        },
    }
