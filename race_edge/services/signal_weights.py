"""
Adaptive signal weights, calibration and drift detection.

The model has three adaptive parts:

    signal weights  (odds / historical / recent / consistency)
        Nudged after every event by a fixed 2% step split 40/30/20/10,
        upward when the recommended contender won and downward when it
        did not, then renormalised and clamped to [0.05, 0.70].

    calibration scalar  (default 1.0, bounded to [0.5, 1.5])
        Moved by -0.01 × (adjusted − implied) of the actual winner, so a
        model that keeps over-rating winners' chances shrinks its own
        adjustments and one that under-rates them amplifies them.

    drift state
        Every DRIFT_WINDOW events, the ROI of the most recent window is
        compared against all earlier events.  Drift is flagged when the
        historical ROI beats the recent ROI by more than 15 points.

All functions are pure.  :func:`replay_model_state` folds them over the
whole ledger so the model state is reproducible from the ledger alone.
"""

import logging
import os
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence

from race_edge.core.records import DriftState, EventRecord, ModelState, SignalWeights
from race_edge.services.performance import calculate_betting_history, recent_accuracy

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Tuning constants
# ---------------------------------------------------------------------------

_WEIGHT_STEP = 0.02
_WEIGHT_SPLIT = SignalWeights(odds=0.4, historical=0.3, recent=0.2, consistency=0.1)
WEIGHT_MIN, WEIGHT_MAX = 0.05, 0.70

_CALIBRATION_RATE = 0.01
CALIBRATION_MIN, CALIBRATION_MAX = 0.5, 1.5

DRIFT_WINDOW = int(os.getenv("DRIFT_WINDOW", "20"))
DRIFT_THRESHOLD = 0.15

# Events needed before the confidence scaling factor reaches 1.0
_FULL_CONFIDENCE_EVENTS = 100

_WEIGHT_NAMES = ("odds", "historical", "recent", "consistency")


# ---------------------------------------------------------------------------
# Signal weights
# ---------------------------------------------------------------------------

def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _bounded_normalise(raw: Dict[str, float]) -> Dict[str, float]:
    """Scale ``raw`` to sum to 1.0 with every weight inside the bounds.

    Weights that fall outside after scaling are pinned at the bound and the
    remaining mass is spread over the free weights in proportion to their
    raw values; repeat until nothing moves.
    """
    pinned: Dict[str, float] = {}
    for _ in range(len(raw)):
        free = [n for n in raw if n not in pinned]
        if not free:
            break
        remaining = 1.0 - sum(pinned.values())
        free_total = sum(raw[n] for n in free)
        if free_total <= 0:
            scaled = {n: remaining / len(free) for n in free}
        else:
            scaled = {n: raw[n] * remaining / free_total for n in free}
        out_of_bounds = {
            n: _clamp(v, WEIGHT_MIN, WEIGHT_MAX)
            for n, v in scaled.items()
            if v < WEIGHT_MIN or v > WEIGHT_MAX
        }
        if not out_of_bounds:
            return {**pinned, **scaled}
        pinned.update(out_of_bounds)
    return pinned


def update_signal_weights(weights: SignalWeights, was_correct: bool) -> SignalWeights:
    """Nudge the four weights after one event.

    Renormalise → clamp to [0.05, 0.70] → renormalise; the second pass only
    redistributes over unclamped weights, so the result always sums to 1.0
    and stays in bounds.
    """
    direction = 1.0 if was_correct else -1.0
    nudged = {
        name: getattr(weights, name) + direction * _WEIGHT_STEP * getattr(_WEIGHT_SPLIT, name)
        for name in _WEIGHT_NAMES
    }
    total = sum(nudged.values())
    normalised = {n: v / total for n, v in nudged.items()}
    clamped = {n: _clamp(v, WEIGHT_MIN, WEIGHT_MAX) for n, v in normalised.items()}
    final = _bounded_normalise(clamped)
    return SignalWeights(**{n: final[n] for n in _WEIGHT_NAMES})


# ---------------------------------------------------------------------------
# Calibration
# ---------------------------------------------------------------------------

@dataclass(slots=True, frozen=True)
class CalibrationUpdate:
    new_scalar: float
    adjustment_applied: bool
    reason: str


def update_calibration(predicted_prob: float, implied_prob: float, current_scalar: float) -> CalibrationUpdate:
    """Move the calibration scalar against the winner's prediction error.

    Args:
        predicted_prob: Model-adjusted probability of the actual winner.
        implied_prob: Implied probability of the actual winner.
        current_scalar: Scalar in force before this event.
    """
    error = predicted_prob - implied_prob
    adjustment = -error * _CALIBRATION_RATE
    new_scalar = _clamp(current_scalar + adjustment, CALIBRATION_MIN, CALIBRATION_MAX)
    applied = abs(new_scalar - current_scalar) > 0.001
    reason = (
        f"Adjusted calibration by {adjustment * 100:+.2f}% (winner error={error:+.4f})"
        if applied
        else "No calibration adjustment needed"
    )
    return CalibrationUpdate(new_scalar=new_scalar, adjustment_applied=applied, reason=reason)


# ---------------------------------------------------------------------------
# Drift
# ---------------------------------------------------------------------------

@dataclass(slots=True, frozen=True)
class DriftDetectionResult:
    drift_detected: bool
    recent_roi: float
    historical_roi: float
    threshold: float = DRIFT_THRESHOLD

    @property
    def drift_score(self) -> float:
        return self.historical_roi - self.recent_roi


def detect_drift(records: Sequence[EventRecord], window_size: int = DRIFT_WINDOW) -> DriftDetectionResult:
    """Compare ROI of the last ``window_size`` events with everything before.

    Only evaluated once at least ``2 × window_size`` events exist; below that
    the result reports no drift and zero ROIs.  ROIs are fractions.
    """
    if len(records) < window_size * 2:
        return DriftDetectionResult(drift_detected=False, recent_roi=0.0, historical_roi=0.0)

    recent = calculate_betting_history(records[-window_size:])
    historical = calculate_betting_history(records[:-window_size])
    recent_roi = recent.cumulative_roi / 100.0
    historical_roi = historical.cumulative_roi / 100.0

    return DriftDetectionResult(
        drift_detected=(historical_roi - recent_roi) > DRIFT_THRESHOLD,
        recent_roi=recent_roi,
        historical_roi=historical_roi,
    )


def confidence_scaling_factor(events_processed: int) -> float:
    return min(1.0, events_processed / _FULL_CONFIDENCE_EVENTS)


# ---------------------------------------------------------------------------
# Model state
# ---------------------------------------------------------------------------

def apply_event(state: ModelState, history: Sequence[EventRecord], window_size: int = DRIFT_WINDOW) -> ModelState:
    """Advance ``state`` by the last event of ``history``.

    ``history`` is the ledger up to and including the event being applied.
    Timestamps are taken from the event so replay is reproducible.
    """
    record = history[-1]
    n = len(history)
    winner = record.actual_first

    # A skipped event made no pick, so there is nothing to reinforce
    if record.recommended_contender is None:
        weights = state.weights
    else:
        weights = update_signal_weights(state.weights, record.won)
    calibration = update_calibration(
        record.predicted_probabilities[winner],
        record.implied_probabilities[winner],
        state.calibration_scalar,
    )

    drift = replace(state.drift, current_accuracy=recent_accuracy(history, window_size))
    if n % window_size == 0:
        result = detect_drift(history, window_size)
        baseline: Optional[float] = None
        if n > window_size:
            baseline = recent_accuracy(history[:-window_size], n - window_size)
        drift = replace(
            drift,
            baseline_accuracy=baseline if baseline is not None else drift.baseline_accuracy,
            drift_score=result.drift_score,
            drift_detected=result.drift_detected,
            recent_roi=result.recent_roi,
            historical_roi=result.historical_roi,
            last_check=record.created_at,
        )
        if result.drift_detected:
            logger.warning(
                "Drift detected at event %d: historical ROI %.2f%% vs recent %.2f%%",
                n, result.historical_roi * 100, result.recent_roi * 100,
            )

    return ModelState(
        weights=weights,
        calibration_scalar=calibration.new_scalar,
        confidence_scaling_factor=confidence_scaling_factor(n),
        total_events_processed=n,
        drift=drift,
        last_updated=record.created_at,
    )


def replay_model_state(records: Sequence[EventRecord], window_size: int = DRIFT_WINDOW) -> ModelState:
    """Fold :func:`apply_event` over the whole ledger from default state."""
    state = ModelState()
    history: List[EventRecord] = []
    for record in records:
        history.append(record)
        state = apply_event(state, history, window_size)
    if records:
        logger.info(
            "Model state replayed over %d events: weights=%s calibration=%.4f accuracy=%.1f%%",
            len(records),
            "/".join(f"{w:.3f}" for w in state.weights.as_tuple()),
            state.calibration_scalar,
            state.drift.current_accuracy,
        )
    return state
