"""Stake sizing, the single source of truth for bet sizing math.

All functions here are **pure**: no I/O, no storage, no logging.
Import from this module; never reimplement sizing locally in services.

The two functions cover the two halves of a sizing decision:

1. :func:`assess_confidence` grades how much the model's bucket history
   and track record can be trusted for one event.
2. :func:`size_bet` turns the recommended contender's edge and that grade
   into a stake in currency units.

Sizing rule
-----------
::

    stake = round_1000(clamp(1000 × min(2, 1 + 10 × max(0, edge)) × m, 1000, 10000))

with ``m`` = 1.5 / 1.0 / 0.5 for high / medium / low confidence.  Edges at
or below :data:`MIN_EDGE` return 0, meaning "skip, no wager".  The
multiplier on edge saturates at 2× (edge ≥ 10%), so the largest stake the
rule can produce is 3000; the 10000 ceiling is the hard cap the operator
sees in the UI.

Run tests with::

    pytest tests/test_bet_sizing.py -v
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Final, Sequence

from race_edge.core.records import BucketStats, ConfidenceLevel

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Base stake before edge and confidence multipliers.
BASE_STAKE: Final[int] = 1000

#: Smallest stake ever recommended (besides 0 = skip).
MIN_STAKE: Final[int] = 1000

#: Largest stake ever recommended.
MAX_STAKE: Final[int] = 10000

#: Stakes are rounded to this increment.
STAKE_INCREMENT: Final[int] = 1000

#: Edge at or below which no wager is recommended.
MIN_EDGE: Final[float] = float(os.getenv("MIN_EDGE", "0.02"))

#: Ceiling on the edge multiplier ``1 + 10 × edge``.
_MAX_EDGE_MULTIPLIER: Final[float] = 2.0

#: Decimal places kept when averaging bucket stats across the field.
_AVERAGE_DIGITS: Final[int] = 9

_CONFIDENCE_MULTIPLIERS: Final[dict] = {
    ConfidenceLevel.HIGH: 1.5,
    ConfidenceLevel.MEDIUM: 1.0,
    ConfidenceLevel.LOW: 0.5,
}


@dataclass(slots=True, frozen=True)
class ConfidenceThresholds:
    """Minimum evidence required for a confidence grade.

    Attributes:
        min_sample_size: Average bucket observation count across the field.
        max_variance: Average bucket variance score must be strictly below.
        min_accuracy: Model's current accuracy, percent.
        min_calibration: Calibration scalar.
    """

    min_sample_size: float
    max_variance: float
    min_accuracy: float
    min_calibration: float

    def met_by(self, sample_size: float, variance: float, accuracy: float, calibration: float) -> bool:
        return (
            sample_size >= self.min_sample_size
            and variance < self.max_variance
            and accuracy >= self.min_accuracy
            and calibration >= self.min_calibration
        )


HIGH_CONFIDENCE: Final[ConfidenceThresholds] = ConfidenceThresholds(50, 0.4, 55.0, 0.95)
MEDIUM_CONFIDENCE: Final[ConfidenceThresholds] = ConfidenceThresholds(20, 0.6, 45.0, 0.85)


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------


def assess_confidence(
    field_buckets: Sequence[BucketStats],
    current_accuracy: float,
    calibration_scalar: float,
) -> ConfidenceLevel:
    """Grade the trustworthiness of a prediction.

    Args:
        field_buckets: The bucket statistics of each contender's bucket, one
            entry per contender (so a bucket holding three contenders counts
            three times).
        current_accuracy: The model's recent recommended-contender win rate,
            in percent.
        calibration_scalar: The model's current calibration scalar.

    Returns:
        ``HIGH`` if every high threshold is met, else ``MEDIUM`` if every
        medium threshold is met, else ``LOW``.  An empty field is ``LOW``.
    """
    if not field_buckets:
        return ConfidenceLevel.LOW

    n = len(field_buckets)
    # Rounded so that six buckets at exactly a threshold average to it
    sample_size = round(math.fsum(b.total_observations for b in field_buckets) / n, _AVERAGE_DIGITS)
    variance = round(math.fsum(b.variance_score for b in field_buckets) / n, _AVERAGE_DIGITS)

    if HIGH_CONFIDENCE.met_by(sample_size, variance, current_accuracy, calibration_scalar):
        return ConfidenceLevel.HIGH
    if MEDIUM_CONFIDENCE.met_by(sample_size, variance, current_accuracy, calibration_scalar):
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


# ---------------------------------------------------------------------------
# Stake
# ---------------------------------------------------------------------------


def _round_to_increment(value: float, increment: int = STAKE_INCREMENT) -> int:
    # Half-up rounding; round() would send 2500 to 2000.
    return int(math.floor(value / increment + 0.5)) * increment


def size_bet(edge: float, confidence: ConfidenceLevel | str) -> int:
    """Recommended stake for a contender with the given edge.

    Args:
        edge: Adjusted probability minus implied probability.
        confidence: Confidence grade from :func:`assess_confidence`.

    Returns:
        0 when ``edge <= MIN_EDGE``; otherwise a multiple of 1000 in
        ``[MIN_STAKE, MAX_STAKE]``.

    Examples::

        size_bet(0.02, "high")    →    0   (no edge worth wagering)
        size_bet(0.05, "medium")  → 2000   (1000 × 1.5 → 1500 → 2000)
        size_bet(0.03, "low")     → 1000   (650 → floor 1000)
        size_bet(0.25, "high")    → 3000   (multiplier capped at 2)
    """
    if edge <= MIN_EDGE:
        return 0

    level = ConfidenceLevel(confidence)
    edge_multiplier = min(_MAX_EDGE_MULTIPLIER, 1.0 + 10.0 * max(0.0, edge))
    raw = BASE_STAKE * edge_multiplier * _CONFIDENCE_MULTIPLIERS[level]
    clamped = max(float(MIN_STAKE), min(float(MAX_STAKE), raw))
    return _round_to_increment(clamped)
