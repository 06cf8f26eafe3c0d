"""Immutable value types shared by the ledger, the aggregators and the API.

Design choices
--------------
* Every type is a frozen, slotted dataclass.  Sequences are coerced to
  tuples in ``__post_init__`` so a record never holds a reference to a
  caller-owned list; no runtime freezing of nested structures is needed.
* ``to_dict`` / ``from_dict`` produce and consume plain JSON-compatible
  dicts.  ``from_dict`` raises ``KeyError`` / ``TypeError`` / ``ValueError``
  on malformed input; the storage layer turns those into
  :class:`~race_edge.exceptions.StorageCorruptionError`.
* :class:`BucketTable` is a fixed record with one named field per bucket
  rather than a dict keyed by bucket string, because the bucket set is
  closed.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple

from race_edge.core.odds_math import BUCKET_KEYS


class StrategyMode(str, Enum):
    SAFE = "safe"
    BALANCED = "balanced"
    VALUE = "value"
    AGGRESSIVE = "aggressive"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def _floats(values) -> Tuple[float, ...]:
    return tuple(float(v) for v in values)


# ---------------------------------------------------------------------------
# Model weights
# ---------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class SignalWeights:
    """Blending weights for the four prediction signals.

    Attributes:
        odds: Weight of the market (implied probability) signal.
        historical: Weight of the all-time bucket win delta.
        recent: Weight of the recent-window bucket win rate.
        consistency: Weight of the variance-derived consistency modifier.
    """

    odds: float = 0.35
    historical: float = 0.25
    recent: float = 0.25
    consistency: float = 0.15

    def total(self) -> float:
        return self.odds + self.historical + self.recent + self.consistency

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.odds, self.historical, self.recent, self.consistency)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignalWeights":
        return cls(
            odds=float(data["odds"]),
            historical=float(data["historical"]),
            recent=float(data["recent"]),
            consistency=float(data["consistency"]),
        )


@dataclass(slots=True, frozen=True)
class DriftState:
    """Outcome of the most recent drift check.

    Accuracies are recommended-contender win rates in percent; ROIs are
    fractions.  ``drift_score`` is ``historical_roi - recent_roi``.
    """

    baseline_accuracy: float = 0.0
    current_accuracy: float = 0.0
    drift_score: float = 0.0
    last_check: Optional[str] = None
    drift_detected: bool = False
    recent_roi: float = 0.0
    historical_roi: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DriftState":
        return cls(
            baseline_accuracy=float(data["baseline_accuracy"]),
            current_accuracy=float(data["current_accuracy"]),
            drift_score=float(data["drift_score"]),
            last_check=data.get("last_check"),
            drift_detected=bool(data.get("drift_detected", False)),
            recent_roi=float(data.get("recent_roi", 0.0)),
            historical_roi=float(data.get("historical_roi", 0.0)),
        )


@dataclass(slots=True, frozen=True)
class ModelState:
    weights: SignalWeights = field(default_factory=SignalWeights)
    calibration_scalar: float = 1.0
    confidence_scaling_factor: float = 0.0
    total_events_processed: int = 0
    drift: DriftState = field(default_factory=DriftState)
    last_updated: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weights": self.weights.to_dict(),
            "calibration_scalar": self.calibration_scalar,
            "confidence_scaling_factor": self.confidence_scaling_factor,
            "total_events_processed": self.total_events_processed,
            "drift": self.drift.to_dict(),
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelState":
        return cls(
            weights=SignalWeights.from_dict(data["weights"]),
            calibration_scalar=float(data["calibration_scalar"]),
            confidence_scaling_factor=float(data["confidence_scaling_factor"]),
            total_events_processed=int(data["total_events_processed"]),
            drift=DriftState.from_dict(data["drift"]),
            last_updated=data.get("last_updated"),
        )


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class SignalBreakdown:
    """Raw signal contributions for one contender.

    ``odds_signal`` is the implied probability; the other three are the
    weighted deltas (weight × delta) that fed the adjustment factor.
    """

    contender_index: int
    odds_signal: float
    historical_signal: float
    recent_signal: float
    consistency_signal: float

    @property
    def adjustment(self) -> float:
        """Sum of the three bucket contributions (before calibration)."""
        return self.historical_signal + self.recent_signal + self.consistency_signal

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignalBreakdown":
        return cls(
            contender_index=int(data["contender_index"]),
            odds_signal=float(data["odds_signal"]),
            historical_signal=float(data["historical_signal"]),
            recent_signal=float(data["recent_signal"]),
            consistency_signal=float(data["consistency_signal"]),
        )


@dataclass(slots=True, frozen=True)
class EventRecord:
    """One resolved wagering event as stored in the ledger.

    ``recommended_contender`` is ``None`` when the strategy skipped the
    event; a skipped event carries zero stake and zero profit/loss.
    ``stake`` is the amount actually wagered, which the operator may set
    differently from ``recommended_stake``.
    """

    odds: Tuple[float, ...]
    implied_probabilities: Tuple[float, ...]
    strategy_mode: str
    predicted_probabilities: Tuple[float, ...]
    value_edges: Tuple[float, ...]
    recommended_contender: Optional[int]
    recommended_stake: int
    stake: float
    confidence_level: str
    actual_first: int
    actual_second: int
    actual_third: int
    profit_loss: float
    signal_breakdown: Optional[SignalBreakdown] = None
    weights_snapshot: Optional[SignalWeights] = None
    created_at: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "odds", _floats(self.odds))
        object.__setattr__(self, "implied_probabilities", _floats(self.implied_probabilities))
        object.__setattr__(self, "predicted_probabilities", _floats(self.predicted_probabilities))
        object.__setattr__(self, "value_edges", _floats(self.value_edges))

    @property
    def won(self) -> bool:
        """True when the recommended contender finished first."""
        return self.recommended_contender is not None and self.actual_first == self.recommended_contender

    @property
    def finishing_order(self) -> Tuple[int, int, int]:
        return (self.actual_first, self.actual_second, self.actual_third)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "odds": list(self.odds),
            "implied_probabilities": list(self.implied_probabilities),
            "strategy_mode": self.strategy_mode,
            "predicted_probabilities": list(self.predicted_probabilities),
            "value_edges": list(self.value_edges),
            "recommended_contender": self.recommended_contender,
            "recommended_stake": self.recommended_stake,
            "stake": self.stake,
            "confidence_level": self.confidence_level,
            "actual_first": self.actual_first,
            "actual_second": self.actual_second,
            "actual_third": self.actual_third,
            "profit_loss": self.profit_loss,
            "signal_breakdown": self.signal_breakdown.to_dict() if self.signal_breakdown else None,
            "weights_snapshot": self.weights_snapshot.to_dict() if self.weights_snapshot else None,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventRecord":
        breakdown = data.get("signal_breakdown")
        snapshot = data.get("weights_snapshot")
        recommended = data.get("recommended_contender")
        return cls(
            odds=data["odds"],
            implied_probabilities=data["implied_probabilities"],
            strategy_mode=str(data["strategy_mode"]),
            predicted_probabilities=data["predicted_probabilities"],
            value_edges=data["value_edges"],
            recommended_contender=int(recommended) if recommended is not None else None,
            recommended_stake=int(data["recommended_stake"]),
            stake=float(data["stake"]),
            confidence_level=str(data["confidence_level"]),
            actual_first=int(data["actual_first"]),
            actual_second=int(data["actual_second"]),
            actual_third=int(data["actual_third"]),
            profit_loss=float(data["profit_loss"]),
            signal_breakdown=SignalBreakdown.from_dict(breakdown) if breakdown else None,
            weights_snapshot=SignalWeights.from_dict(snapshot) if snapshot else None,
            created_at=data.get("created_at"),
        )


# ---------------------------------------------------------------------------
# Derived statistics
# ---------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class BucketStats:
    """Aggregate performance of every contender priced inside one bucket.

    Rates and ROI are percentages; ``average_implied_probability`` and
    ``variance_score`` are fractions.
    """

    total_observations: int = 0
    wins: int = 0
    top3_finishes: int = 0
    total_implied_probability: float = 0.0
    average_implied_probability: float = 0.0
    actual_win_rate: float = 0.0
    roi_if_flat_bet: float = 0.0
    variance_score: float = 0.0
    recent_window_performance: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BucketStats":
        return cls(
            total_observations=int(data["total_observations"]),
            wins=int(data["wins"]),
            top3_finishes=int(data["top3_finishes"]),
            total_implied_probability=float(data["total_implied_probability"]),
            average_implied_probability=float(data["average_implied_probability"]),
            actual_win_rate=float(data["actual_win_rate"]),
            roi_if_flat_bet=float(data["roi_if_flat_bet"]),
            variance_score=float(data["variance_score"]),
            recent_window_performance=float(data["recent_window_performance"]),
        )


#: Bucket key → BucketTable field name.
_BUCKET_FIELDS: Dict[str, str] = dict(zip(BUCKET_KEYS, ("one_two", "three_five", "six_ten", "eleven_thirty")))


@dataclass(slots=True, frozen=True)
class BucketTable:
    """Statistics for the four odds buckets, one named field each."""

    one_two: BucketStats = field(default_factory=BucketStats)
    three_five: BucketStats = field(default_factory=BucketStats)
    six_ten: BucketStats = field(default_factory=BucketStats)
    eleven_thirty: BucketStats = field(default_factory=BucketStats)

    def get(self, key: str) -> BucketStats:
        try:
            return getattr(self, _BUCKET_FIELDS[key])
        except KeyError:
            raise KeyError(f"Unknown bucket key {key!r}; expected one of {BUCKET_KEYS}") from None

    def items(self) -> Iterator[Tuple[str, BucketStats]]:
        for key in BUCKET_KEYS:
            yield key, self.get(key)

    @classmethod
    def from_mapping(cls, stats: Dict[str, BucketStats]) -> "BucketTable":
        return cls(**{_BUCKET_FIELDS[key]: stats[key] for key in BUCKET_KEYS})

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {key: stats.to_dict() for key, stats in self.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BucketTable":
        return cls.from_mapping({key: BucketStats.from_dict(data[key]) for key in BUCKET_KEYS})


@dataclass(slots=True, frozen=True)
class BettingHistory:
    """Cumulative totals over a run of events.  ROI and win rate in percent."""

    total_races: int = 0
    total_wins: int = 0
    total_profit: float = 0.0
    total_invested: float = 0.0
    cumulative_roi: float = 0.0
    win_rate: float = 0.0
    last_updated: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BettingHistory":
        return cls(
            total_races=int(data["total_races"]),
            total_wins=int(data["total_wins"]),
            total_profit=float(data["total_profit"]),
            total_invested=float(data["total_invested"]),
            cumulative_roi=float(data["cumulative_roi"]),
            win_rate=float(data["win_rate"]),
            last_updated=data.get("last_updated"),
        )
