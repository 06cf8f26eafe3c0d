"""
Five-step prediction engine.

    1. Implied probability per contender (1 / (odds + 1), overround removed)
    2. Bucket assignment per contender
    3. Bucket signals:
         win delta     actual win rate − average implied probability
         recent delta  recent-window win rate
         consistency   +0.1 at variance 0 → 0 at variance 0.5 → −0.1 at 1.0
    4. Adjustment factor
         max(0.1, 1 + c × (wH × win delta + wR × recent delta + wC × consistency))
       where c is the calibration scalar
    5. Normalise the adjusted values to sum to 1.0

A bucket with no observations contributes nothing, so an empty ledger
returns the implied probabilities unchanged.

The engine is pure: it reads the bucket table and model state it is given
and returns new values.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from race_edge.core.odds_math import FIELD_SIZE, classify_odds, normalise, raw_implied_prob
from race_edge.core.records import BucketStats, BucketTable, ModelState, SignalBreakdown

logger = logging.getLogger(__name__)

_MIN_FACTOR = 0.1
_MAX_CONSISTENCY = 0.1
_VARIANCE_PIVOT = 0.5
_VARIANCE_CEILING = 1.0


@dataclass(slots=True, frozen=True)
class PredictionResult:
    odds: Tuple[float, ...]
    buckets: Tuple[str, ...]
    implied_probabilities: Tuple[float, ...]
    adjusted_probabilities: Tuple[float, ...]
    signals: Tuple[SignalBreakdown, ...]

    @property
    def value_edges(self) -> Tuple[float, ...]:
        """Adjusted minus implied probability per contender."""
        return tuple(a - i for a, i in zip(self.adjusted_probabilities, self.implied_probabilities))

    def signal_breakdown(self, index: int) -> SignalBreakdown:
        """Signal contributions for one contender (normally the recommended one)."""
        return self.signals[index]


def consistency_modifier(variance_score: float) -> float:
    """Map a bucket's outcome variance to a modifier in [-0.1, +0.1].

    Low variance (< 0.5) rewards the bucket linearly from +0.1 at 0 down to
    0 at 0.5; higher variance penalises it linearly down to -0.1 at 1.0.
    """
    if variance_score < _VARIANCE_PIVOT:
        modifier = _MAX_CONSISTENCY * (_VARIANCE_PIVOT - variance_score) / _VARIANCE_PIVOT
    else:
        span = _VARIANCE_CEILING - _VARIANCE_PIVOT
        modifier = -_MAX_CONSISTENCY * (variance_score - _VARIANCE_PIVOT) / span
    return max(-_MAX_CONSISTENCY, min(_MAX_CONSISTENCY, modifier))


def bucket_signals(stats: BucketStats) -> Tuple[float, float, float]:
    """(win delta, recent delta, consistency modifier) for one bucket."""
    if stats.total_observations == 0:
        return 0.0, 0.0, 0.0
    win_delta = stats.actual_win_rate / 100.0 - stats.average_implied_probability
    recent_delta = stats.recent_window_performance / 100.0
    return win_delta, recent_delta, consistency_modifier(stats.variance_score)


def predict(odds: Sequence[float], bucket_table: BucketTable, model_state: ModelState) -> PredictionResult:
    """Adjusted win probabilities for a six-contender field.

    Raises:
        ValueError: If ``odds`` does not hold exactly six positive prices.
    """
    if len(odds) != FIELD_SIZE:
        raise ValueError(f"Expected {FIELD_SIZE} odds, got {len(odds)}")

    # Step 1
    raw = [raw_implied_prob(o) for o in odds]
    implied = normalise(raw)

    # Step 2
    buckets = [classify_odds(o) for o in odds]

    weights = model_state.weights
    scalar = model_state.calibration_scalar
    unnormalised: List[float] = []
    signals: List[SignalBreakdown] = []
    for i, key in enumerate(buckets):
        # Step 3
        win_delta, recent_delta, consistency = bucket_signals(bucket_table.get(key))
        breakdown = SignalBreakdown(
            contender_index=i,
            odds_signal=implied[i],
            historical_signal=weights.historical * win_delta,
            recent_signal=weights.recent * recent_delta,
            consistency_signal=weights.consistency * consistency,
        )
        signals.append(breakdown)

        # Step 4
        factor = max(_MIN_FACTOR, 1.0 + scalar * breakdown.adjustment)
        unnormalised.append(raw[i] * factor)

    # Step 5
    adjusted = normalise(unnormalised)

    logger.debug(
        "Prediction for odds=%s: adjusted=%s",
        list(odds), [round(p, 4) for p in adjusted],
    )
    return PredictionResult(
        odds=tuple(float(o) for o in odds),
        buckets=tuple(buckets),
        implied_probabilities=tuple(implied),
        adjusted_probabilities=tuple(adjusted),
        signals=tuple(signals),
    )
