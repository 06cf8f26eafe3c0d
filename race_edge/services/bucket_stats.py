"""
Per-bucket aggregate statistics, rebuilt from the full ledger.

Every contender slot of every event is one observation for the bucket its
odds fall in.  The rebuild is a full O(events × 6) pass, never incremental,
because it doubles as the recovery path after storage corruption.

Per bucket:
    total_observations, wins, top3_finishes
    total / average implied probability (overround-free, as stored)
    actual_win_rate         wins / total × 100
    roi_if_flat_bet         1-unit flat stake on every observation;
                            a win returns stake × (odds + 1)
    variance_score          population std dev of the 0/1 outcome sequence
    recent_window_performance  win rate over the last RECENT_WINDOW outcomes
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Sequence

import numpy as np

from race_edge.core.odds_math import BUCKET_KEYS, classify_odds
from race_edge.core.records import BucketStats, BucketTable, EventRecord

logger = logging.getLogger(__name__)

#: Outcomes kept per bucket for the recent-window win rate.
RECENT_WINDOW = 20

#: Buckets with fewer observations are excluded from best/worst rankings.
MIN_OBSERVATIONS_FOR_RANKING = 5

_FLAT_STAKE = 1.0


@dataclass
class _BucketAccumulator:
    total: int = 0
    wins: int = 0
    top3: int = 0
    implied_sum: float = 0.0
    staked: float = 0.0
    payout: float = 0.0
    outcomes: List[int] = field(default_factory=list)
    recent: Deque[int] = field(default_factory=lambda: deque(maxlen=RECENT_WINDOW))

    def observe(self, odds: float, implied: float, won: bool, placed: bool) -> None:
        self.total += 1
        self.implied_sum += implied
        outcome = 1 if won else 0
        self.wins += outcome
        self.outcomes.append(outcome)
        self.recent.append(outcome)
        if placed:
            self.top3 += 1
        self.staked += _FLAT_STAKE
        if won:
            self.payout += _FLAT_STAKE * (odds + 1.0)

    def finalise(self) -> BucketStats:
        if self.total == 0:
            return BucketStats()
        return BucketStats(
            total_observations=self.total,
            wins=self.wins,
            top3_finishes=self.top3,
            total_implied_probability=self.implied_sum,
            average_implied_probability=self.implied_sum / self.total,
            actual_win_rate=self.wins / self.total * 100.0,
            roi_if_flat_bet=(self.payout - self.staked) / self.staked * 100.0,
            variance_score=float(np.std(self.outcomes)),
            recent_window_performance=float(np.mean(self.recent)) * 100.0,
        )


def rebuild_bucket_stats(records: Sequence[EventRecord]) -> BucketTable:
    """Recompute all four buckets from scratch.

    Deterministic: the same records always produce an identical table.
    """
    acc: Dict[str, _BucketAccumulator] = {key: _BucketAccumulator() for key in BUCKET_KEYS}

    for record in records:
        placed = set(record.finishing_order)
        for i, odds in enumerate(record.odds):
            acc[classify_odds(odds)].observe(
                odds=odds,
                implied=record.implied_probabilities[i],
                won=record.actual_first == i,
                placed=i in placed,
            )

    table = BucketTable.from_mapping({key: a.finalise() for key, a in acc.items()})
    logger.debug(
        "Bucket stats rebuilt from %d events: %s",
        len(records),
        ", ".join(f"{k}={s.total_observations}" for k, s in table.items()),
    )
    return table


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------

def trust_weights(table: BucketTable) -> Dict[str, float]:
    """Realised win rate relative to what the market implied, per bucket.

    1.0 means the bucket wins exactly as often as its prices suggest;
    above 1.0 the market under-rates it.  Empty buckets report 1.0.
    """
    weights = {}
    for key, stats in table.items():
        if stats.total_observations == 0 or stats.average_implied_probability <= 0:
            weights[key] = 1.0
        else:
            weights[key] = round(
                (stats.actual_win_rate / 100.0) / stats.average_implied_probability, 4
            )
    return weights


def _ranked(table: BucketTable) -> List[tuple]:
    return [
        (key, stats.roi_if_flat_bet)
        for key, stats in table.items()
        if stats.total_observations >= MIN_OBSERVATIONS_FOR_RANKING
    ]


def best_performing_bucket(table: BucketTable) -> str:
    """Bucket key with the highest flat-bet ROI, or "N/A"."""
    ranked = _ranked(table)
    if not ranked:
        return "N/A"
    best = ranked[0]
    for entry in ranked[1:]:
        if entry[1] > best[1]:
            best = entry
    return best[0]


def worst_performing_bucket(table: BucketTable) -> str:
    """Bucket key with the lowest flat-bet ROI, or "N/A"."""
    ranked = _ranked(table)
    if not ranked:
        return "N/A"
    worst = ranked[0]
    for entry in ranked[1:]:
        if entry[1] < worst[1]:
            worst = entry
    return worst[0]
