"""
Append-only event ledger: the single source of truth.

Every other structure (bucket statistics, betting history, model state) is
a cache rebuilt from the ledger by :mod:`race_edge.services.rebuild`.

Public API:
  validate_event(record)   → None  (raises ValidationError)
  Ledger.append(record)    → EventRecord  (the stored, timestamped copy)
  Ledger.all()             → tuple of EventRecord
  Ledger.undo_last()       → bool  (False when the ledger is empty)
"""

import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from race_edge.core.odds_math import FIELD_SIZE, validate_odds
from race_edge.core.records import ConfidenceLevel, EventRecord, StrategyMode
from race_edge.exceptions import ValidationError
from race_edge.services.storage import StateRepository, StorageKeys

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation (pure, no storage)
# ---------------------------------------------------------------------------

def _check_length(values: Sequence[float], name: str) -> None:
    if len(values) != FIELD_SIZE:
        raise ValidationError(
            f"{name} must have exactly {FIELD_SIZE} elements, got {len(values)}", name
        )


def _check_finite(values: Sequence[float], name: str) -> None:
    for i, v in enumerate(values):
        if not math.isfinite(v):
            raise ValidationError(f"{name}[{i}]={v!r} is not a finite number", name)


def _check_index(value: Optional[int], name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < FIELD_SIZE:
        raise ValidationError(
            f"{name}={value!r} is not a valid contender index (0-{FIELD_SIZE - 1})", name
        )


def validate_event(record: EventRecord) -> None:
    """Reject malformed events before anything is written.

    Checks array lengths, odds domain, index ranges, distinct finishing
    positions, strategy/confidence vocabularies and skip consistency.

    Raises:
        ValidationError: On the first problem found; ``field`` names it.
    """
    _check_length(record.odds, "odds")
    for i, o in enumerate(record.odds):
        try:
            validate_odds(o)
        except ValueError as exc:
            raise ValidationError(f"odds[{i}]: {exc}", "odds") from None

    for name in ("implied_probabilities", "predicted_probabilities", "value_edges"):
        values = getattr(record, name)
        _check_length(values, name)
        _check_finite(values, name)

    for name in ("actual_first", "actual_second", "actual_third"):
        _check_index(getattr(record, name), name)
    if len(set(record.finishing_order)) != 3:
        raise ValidationError(
            f"Finishing positions must be distinct, got {record.finishing_order}", "actual_first"
        )

    if record.recommended_contender is not None:
        _check_index(record.recommended_contender, "recommended_contender")

    try:
        StrategyMode(record.strategy_mode)
    except ValueError:
        raise ValidationError(f"Unknown strategy mode {record.strategy_mode!r}", "strategy_mode") from None
    try:
        ConfidenceLevel(record.confidence_level)
    except ValueError:
        raise ValidationError(
            f"Unknown confidence level {record.confidence_level!r}", "confidence_level"
        ) from None

    if record.recommended_stake < 0 or not math.isfinite(record.stake) or record.stake < 0:
        raise ValidationError("Stakes must be non-negative", "stake")
    if not math.isfinite(record.profit_loss):
        raise ValidationError(f"profit_loss={record.profit_loss!r} is not finite", "profit_loss")
    if record.recommended_contender is None and (record.stake or record.profit_loss):
        raise ValidationError("A skipped event cannot carry a stake or profit/loss", "stake")


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

def _decode_ledger(data) -> Tuple[EventRecord, ...]:
    if not isinstance(data, list):
        raise TypeError(f"ledger blob must be a list, got {type(data).__name__}")
    return tuple(EventRecord.from_dict(item) for item in data)


class Ledger:
    """Append-only sequence of :class:`EventRecord` persisted under one key.

    Records are value objects; the ledger never hands out a reference that
    could mutate stored state.
    """

    def __init__(self, repo: StateRepository):
        self._repo = repo

    def all(self) -> Tuple[EventRecord, ...]:
        """Every stored event, oldest first.

        Raises:
            StorageCorruptionError: The ledger blob cannot be parsed.  There
                is no recovery from this; the caller must surface it.
        """
        return self._repo.read(StorageKeys.LEDGER, _decode_ledger) or ()

    def __len__(self) -> int:
        return len(self.all())

    def append(self, record: EventRecord) -> EventRecord:
        """Validate, timestamp and durably store ``record``.

        Returns:
            The stored copy (with ``created_at`` filled in if it was absent).

        Raises:
            ValidationError: Malformed record; nothing was written.
            StorageQuotaError: The write did not fit; nothing was written.
        """
        validate_event(record)
        if record.created_at is None:
            record = replace(record, created_at=datetime.now(timezone.utc).isoformat())

        existing: List[EventRecord] = list(self.all())
        existing.append(record)
        self._repo.write(StorageKeys.LEDGER, [r.to_dict() for r in existing])

        logger.info(
            "Event %d appended: mode=%s pick=%s stake=%.0f winner=%d P&L=%+.2f",
            len(existing), record.strategy_mode, record.recommended_contender,
            record.stake, record.actual_first, record.profit_loss,
        )
        return record

    def undo_last(self) -> bool:
        """Remove the most recent event.

        This is the only deletion path; it exists to correct operator
        mis-entry.  Returns False (and writes nothing) if the ledger is empty.
        """
        existing = list(self.all())
        if not existing:
            logger.info("Undo requested on an empty ledger, nothing to remove")
            return False

        removed = existing.pop()
        self._repo.write(StorageKeys.LEDGER, [r.to_dict() for r in existing])
        logger.info(
            "Undid event %d (created_at=%s); ledger size now %d",
            len(existing) + 1, removed.created_at, len(existing),
        )
        return True
