"""
Event lifecycle orchestration.

    PROPOSED    odds entered, prediction + recommendation + stake computed
    RESOLVED    finishing order known, profit/loss settled, record built
    REBUILDING  record appended to the ledger, derived state recomputed
    SETTLED     listeners notified (and the remote mirror, if configured)

No event goes back to an earlier stage.  The only reversal is
:meth:`RaceTracker.undo_last`, which removes the newest settled event and
rebuilds.

Public API (RaceTracker):
  propose(odds, mode)                       → Proposal
  resolve(proposal, first, second, third)   → EventRecord (not yet stored)
  log_event(record)                         → EventRecord (stored copy)
  predict / recommend / size_bet            → pure model operations
  rebuild_all() / undo_last()               → recovery and correction
  subscribe(listener)                       → unsubscribe function
  soft_reset() / full_reset() / export()    → session and data management
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence

from race_edge.core.bet_sizing import assess_confidence, size_bet
from race_edge.core.odds_math import settle_profit
from race_edge.core.records import (
    BettingHistory,
    BucketTable,
    ConfidenceLevel,
    EventRecord,
    ModelState,
    SignalWeights,
    StrategyMode,
)
from race_edge.exceptions import StorageCorruptionError, ValidationError
from race_edge.services.ledger import Ledger
from race_edge.services.listeners import LedgerChange, Listener, ListenerRegistry
from race_edge.services.performance import calculate_session_history
from race_edge.services.prediction import PredictionResult, predict
from race_edge.services.rebuild import DerivedState, StatsRebuilder
from race_edge.services.remote_mirror import RemoteLedgerClient
from race_edge.services.storage import KeyValueStore, StateRepository, StorageKeys
from race_edge.services.strategy import Recommendation, recommend

logger = logging.getLogger(__name__)


class EventStage(str, Enum):
    PROPOSED = "proposed"
    RESOLVED = "resolved"
    REBUILDING = "rebuilding"
    SETTLED = "settled"


@dataclass(slots=True, frozen=True)
class Proposal:
    odds: tuple
    mode: StrategyMode
    prediction: PredictionResult
    recommendation: Recommendation
    confidence: ConfidenceLevel
    recommended_stake: int
    weights: SignalWeights

    @property
    def stage(self) -> EventStage:
        return EventStage.PROPOSED

    @property
    def edge(self) -> Optional[float]:
        if self.recommendation.index is None:
            return None
        return self.prediction.value_edges[self.recommendation.index]


# Derived key → (decoder, DerivedState attribute)
_DERIVED: Dict[StorageKeys, tuple] = {
    StorageKeys.BUCKET_STATS: (BucketTable.from_dict, "bucket_stats"),
    StorageKeys.BETTING_HISTORY: (BettingHistory.from_dict, "betting_history"),
    StorageKeys.MODEL_STATE: (ModelState.from_dict, "model_state"),
}


class RaceTracker:
    def __init__(
        self,
        store: KeyValueStore,
        remote: Optional[RemoteLedgerClient] = None,
        listeners: Optional[ListenerRegistry] = None,
    ):
        self._repo = StateRepository(store)
        self.ledger = Ledger(self._repo)
        self.rebuilder = StatsRebuilder(self.ledger, self._repo)
        self.listeners = listeners if listeners is not None else ListenerRegistry()
        self._remote = remote

    # ------------------------------------------------------------------
    # Derived state (read-through with rebuild on corruption)
    # ------------------------------------------------------------------

    def _read_derived(self, key: StorageKeys) -> Any:
        decode, attr = _DERIVED[key]
        try:
            value = self._repo.read(key, decode)
        except StorageCorruptionError:
            logger.warning("%s is corrupted; rebuilding derived state from the ledger", key.value)
            return getattr(self.rebuilder.rebuild_all(), attr)
        if value is None:
            logger.info("%s not found; building it from the ledger", key.value)
            return getattr(self.rebuilder.rebuild_all(), attr)
        return value

    def bucket_stats(self) -> BucketTable:
        return self._read_derived(StorageKeys.BUCKET_STATS)

    def betting_history(self) -> BettingHistory:
        return self._read_derived(StorageKeys.BETTING_HISTORY)

    def model_state(self) -> ModelState:
        return self._read_derived(StorageKeys.MODEL_STATE)

    def session_start(self) -> int:
        try:
            data = self._repo.read(StorageKeys.SESSION, lambda d: int(d["start_index"]))
        except StorageCorruptionError:
            logger.error("Session marker is corrupted; treating the whole ledger as one session")
            return 0
        return data or 0

    def session_history(self) -> BettingHistory:
        return calculate_session_history(self.ledger.all(), self.session_start())

    # ------------------------------------------------------------------
    # Pure model operations on current state
    # ------------------------------------------------------------------

    def predict(self, odds: Sequence[float]) -> PredictionResult:
        return predict(odds, self.bucket_stats(), self.model_state())

    @staticmethod
    def recommend(mode, odds, adjusted_probabilities, edges) -> Recommendation:
        return recommend(mode, odds, adjusted_probabilities, edges)

    @staticmethod
    def size_bet(edge: float, confidence: ConfidenceLevel | str) -> int:
        return size_bet(edge, confidence)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def propose(self, odds: Sequence[float], mode: StrategyMode | str) -> Proposal:
        """Predict, pick and size for a new field of six odds.

        Raises:
            ValidationError: Malformed odds or unknown mode.
        """
        try:
            mode = StrategyMode(mode)
            table = self.bucket_stats()
            state = self.model_state()
            prediction = predict(odds, table, state)
        except ValueError as exc:
            raise ValidationError(str(exc), "odds") from exc

        edges = prediction.value_edges
        rec = recommend(mode, prediction.odds, prediction.adjusted_probabilities, edges)
        confidence = assess_confidence(
            [table.get(b) for b in prediction.buckets],
            state.drift.current_accuracy,
            state.calibration_scalar,
        )
        stake = 0 if rec.skip else size_bet(edges[rec.index], confidence)

        logger.info(
            "Proposed: mode=%s pick=%s confidence=%s stake=%d (%s)",
            mode.value, rec.index, confidence.value, stake, rec.reason,
        )
        return Proposal(
            odds=prediction.odds,
            mode=mode,
            prediction=prediction,
            recommendation=rec,
            confidence=confidence,
            recommended_stake=stake,
            weights=state.weights,
        )

    def resolve(
        self,
        proposal: Proposal,
        first: int,
        second: int,
        third: int,
        stake: Optional[float] = None,
    ) -> EventRecord:
        """Settle a proposal against the real finishing order.

        Args:
            stake: Amount actually wagered; defaults to the recommended stake.

        Raises:
            ValidationError: A stake was given for a skipped event.
        """
        rec = proposal.recommendation
        prediction = proposal.prediction

        if rec.skip:
            if stake:
                raise ValidationError("Cannot place a stake on a skipped event", "stake")
            index, wagered, profit, breakdown = None, 0.0, 0.0, None
        else:
            index = rec.index
            wagered = float(proposal.recommended_stake if stake is None else stake)
            profit = settle_profit(wagered, proposal.odds[index], first == index)
            breakdown = prediction.signal_breakdown(index)

        logger.debug("Event resolved: winner=%d pick=%s P&L=%+.2f", first, index, profit)
        return EventRecord(
            odds=proposal.odds,
            implied_probabilities=prediction.implied_probabilities,
            strategy_mode=proposal.mode.value,
            predicted_probabilities=prediction.adjusted_probabilities,
            value_edges=prediction.value_edges,
            recommended_contender=index,
            recommended_stake=proposal.recommended_stake if index is not None else 0,
            stake=wagered,
            confidence_level=proposal.confidence.value,
            actual_first=first,
            actual_second=second,
            actual_third=third,
            profit_loss=profit,
            signal_breakdown=breakdown,
            weights_snapshot=proposal.weights,
        )

    def log_event(self, record: EventRecord) -> EventRecord:
        """Append ``record``, rebuild derived state and notify listeners.

        Raises:
            ValidationError: Malformed record; nothing changed.
            StorageQuotaError: The append or the rebuild did not persist.
                If the append succeeded, call :meth:`rebuild_all` to retry.
        """
        stored = self.ledger.append(record)
        logger.debug("Event stage: %s", EventStage.REBUILDING.value)
        derived = self.rebuilder.rebuild_all()

        self.listeners.notify(LedgerChange("logged", derived.events, stored))
        logger.debug("Event stage: %s", EventStage.SETTLED.value)

        if self._remote is not None:
            self._remote.log_event(stored)
        return stored

    def undo_last(self) -> bool:
        """Remove the newest event.  Returns False (no change) on an empty ledger."""
        if not self.ledger.undo_last():
            return False
        derived = self.rebuilder.rebuild_all()
        self.listeners.notify(LedgerChange("undone", derived.events))
        return True

    def rebuild_all(self) -> DerivedState:
        derived = self.rebuilder.rebuild_all()
        self.listeners.notify(LedgerChange("rebuilt", derived.events))
        return derived

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.listeners.subscribe(listener)

    # ------------------------------------------------------------------
    # Session and data management
    # ------------------------------------------------------------------

    def soft_reset(self) -> int:
        """Start a new betting session.  Learning data is preserved.

        Returns:
            The ledger offset at which the new session starts.
        """
        start = len(self.ledger.all())
        self._repo.write(StorageKeys.SESSION, {"start_index": start})
        logger.info("Session reset at ledger offset %d", start)
        self.listeners.notify(LedgerChange("reset", start))
        return start

    def full_reset(self) -> None:
        """Delete every persisted structure, ledger included."""
        for key in StorageKeys:
            self._repo.delete(key)
        logger.warning("Full reset: all ledger and model data deleted")
        self.listeners.notify(LedgerChange("reset", 0))

    def export(self) -> Dict[str, Any]:
        """Everything persisted, as one JSON-compatible dict."""
        return {
            "ledger": [r.to_dict() for r in self.ledger.all()],
            "bucket_stats": self.bucket_stats().to_dict(),
            "betting_history": self.betting_history().to_dict(),
            "model_state": self.model_state().to_dict(),
            "session": {"start_index": self.session_start()},
        }
