"""
Pydantic request/response schemas for the Race Edge API.

Request models validate shape and ranges before anything reaches the
ledger; the ledger re-validates the assembled record on append.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from race_edge.core.odds_math import FIELD_SIZE

StrategyModeName = Literal["safe", "balanced", "value", "aggressive"]
ConfidenceName = Literal["high", "medium", "low"]


def _check_field(v: List[float]) -> List[float]:
    if len(v) != FIELD_SIZE:
        raise ValueError(f"exactly {FIELD_SIZE} odds are required, got {len(v)}")
    for o in v:
        if not o > 0:
            raise ValueError(f"odds must be positive, got {o}")
    return v


# ---------------------------------------------------------------------------
# Prediction
# ---------------------------------------------------------------------------

class PredictRequest(BaseModel):
    """Payload for POST /api/predictions."""

    odds: List[float] = Field(..., description="Six X-to-1 prices, contender order")
    strategy_mode: StrategyModeName = Field("balanced")

    @field_validator("odds")
    @classmethod
    def validate_odds(cls, v: List[float]) -> List[float]:
        return _check_field(v)


class SignalBreakdownResponse(BaseModel):
    contender_index: int
    odds_signal: float
    historical_signal: float
    recent_signal: float
    consistency_signal: float


class PredictionResponse(BaseModel):
    odds: List[float]
    buckets: List[str]
    implied_probabilities: List[float]
    adjusted_probabilities: List[float]
    value_edges: List[float]
    strategy_mode: StrategyModeName
    skip: bool
    recommended_contender: Optional[int]
    reason: str
    confidence_level: ConfidenceName
    recommended_stake: int
    signal_breakdown: Optional[SignalBreakdownResponse] = None


# ---------------------------------------------------------------------------
# Event logging
# ---------------------------------------------------------------------------

class EventCreate(BaseModel):
    """
    Payload for POST /api/events.

    The server re-runs the prediction for ``odds`` under ``strategy_mode``
    against current state and settles it against the finishing order.
    ``stake`` overrides the recommended stake; it must be omitted (or 0)
    when the strategy skips.
    """

    odds: List[float]
    strategy_mode: StrategyModeName = "balanced"
    actual_first: int = Field(..., ge=0, lt=FIELD_SIZE)
    actual_second: int = Field(..., ge=0, lt=FIELD_SIZE)
    actual_third: int = Field(..., ge=0, lt=FIELD_SIZE)
    stake: Optional[float] = Field(None, ge=0)

    @field_validator("odds")
    @classmethod
    def validate_odds(cls, v: List[float]) -> List[float]:
        return _check_field(v)

    @model_validator(mode="after")
    def validate_finishing_order(self) -> "EventCreate":
        order = (self.actual_first, self.actual_second, self.actual_third)
        if len(set(order)) != 3:
            raise ValueError(f"first/second/third must be distinct contenders, got {order}")
        return self

    model_config = {
        "json_schema_extra": {
            "example": {
                "odds": [2, 3, 4, 5, 8, 15],
                "strategy_mode": "value",
                "actual_first": 1,
                "actual_second": 0,
                "actual_third": 4,
            }
        }
    }


class EventResponse(BaseModel):
    """A stored ledger record."""

    odds: List[float]
    implied_probabilities: List[float]
    strategy_mode: str
    predicted_probabilities: List[float]
    value_edges: List[float]
    recommended_contender: Optional[int]
    recommended_stake: int
    stake: float
    confidence_level: str
    actual_first: int
    actual_second: int
    actual_third: int
    profit_loss: float
    signal_breakdown: Optional[SignalBreakdownResponse] = None
    weights_snapshot: Optional[Dict[str, float]] = None
    created_at: Optional[str] = None


class UndoResponse(BaseModel):
    undone: bool
    ledger_size: int


# ---------------------------------------------------------------------------
# Derived state
# ---------------------------------------------------------------------------

class BettingHistoryResponse(BaseModel):
    total_races: int
    total_wins: int
    total_profit: float
    total_invested: float
    cumulative_roi: float
    win_rate: float
    last_updated: Optional[str] = None


class RoiResponse(BaseModel):
    roi: float
    total_races: int


class RebuildResponse(BaseModel):
    message: str
    events: int
    cumulative_roi: float


class SessionResetResponse(BaseModel):
    message: str
    start_index: int
