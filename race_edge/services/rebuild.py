"""
StatsRebuilder: recompute every derived structure from the ledger.

Used after each append, after undo, and as the recovery path when a cached
structure fails to parse.  Reads nothing but the ledger and the session
offset, and writes bucket stats, betting history and model state.  Two
calls with no ledger change in between produce identical output.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

from race_edge.core.records import BettingHistory, BucketTable, EventRecord, ModelState
from race_edge.services.bucket_stats import rebuild_bucket_stats
from race_edge.services.ledger import Ledger
from race_edge.services.performance import calculate_betting_history
from race_edge.services.signal_weights import replay_model_state
from race_edge.services.storage import StateRepository, StorageKeys

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class DerivedState:
    bucket_stats: BucketTable
    betting_history: BettingHistory
    model_state: ModelState
    events: int


def compute_derived_state(records: Tuple[EventRecord, ...]) -> DerivedState:
    """Pure part of the rebuild."""
    return DerivedState(
        bucket_stats=rebuild_bucket_stats(records),
        betting_history=calculate_betting_history(records),
        model_state=replay_model_state(records),
        events=len(records),
    )


class StatsRebuilder:
    def __init__(self, ledger: Ledger, repo: StateRepository):
        self._ledger = ledger
        self._repo = repo

    def rebuild_all(self) -> DerivedState:
        """Rebuild and persist all derived state.

        Raises:
            StorageCorruptionError: The ledger itself is unreadable.
            StorageQuotaError: A derived structure could not be written; the
                rebuild is not durable and should be retried.
        """
        records = self._ledger.all()
        derived = compute_derived_state(records)

        self._repo.write(StorageKeys.BETTING_HISTORY, derived.betting_history.to_dict())
        self._repo.write(StorageKeys.BUCKET_STATS, derived.bucket_stats.to_dict())
        self._repo.write(StorageKeys.MODEL_STATE, derived.model_state.to_dict())

        logger.info(
            "Derived state rebuilt from %d events (ROI %.2f%%, win rate %.1f%%)",
            derived.events,
            derived.betting_history.cumulative_roi,
            derived.betting_history.win_rate,
        )
        return derived
