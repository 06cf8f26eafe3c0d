"""Fundamental odds mathematics, the single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement locally in services.

Conventions
-----------
* Odds are fractional "X-to-1" values: a winning stake of 1 returns the
  stake plus ``X`` profit.  ``4`` means 4-to-1.
* The raw implied probability of X-to-1 odds is ``1 / (X + 1)``.  Six raw
  probabilities from a real book sum to more than 1.0 (the overround).
* The **implied probability** used by the bucket aggregator, the prediction
  engine and edge calculations is the raw probability with the overround
  removed by proportional normalisation, so the six values sum to 1.0.
  Proportional normalisation (rather than the Shin method used for
  two-outcome markets) is used because with six runners and no insider
  volume estimate the extra Shin parameter is not identifiable.
* Payout: a winning stake returns ``stake × (odds + 1)``; profit is
  ``stake × odds``; a losing stake costs ``stake``.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

import math
from typing import Final, Sequence

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: Number of contenders in every event.
FIELD_SIZE: Final[int] = 6

#: Bucket keys in ascending odds order.  The set is closed.
BUCKET_KEYS: Final[tuple[str, ...]] = ("1-2", "3-5", "6-10", "11-30")

#: Inclusive upper bound of each bucket except the last.
_BUCKET_UPPER_BOUNDS: Final[tuple[tuple[float, str], ...]] = (
    (2.0, "1-2"),
    (5.0, "3-5"),
    (10.0, "6-10"),
)


# ---------------------------------------------------------------------------
# Implied probability
# ---------------------------------------------------------------------------


def validate_odds(odds: float) -> float:
    """Return ``odds`` as a float, or raise if it is not a usable price.

    Raises:
        ValueError: If ``odds`` is not a finite number greater than zero.
    """
    try:
        value = float(odds)
    except (TypeError, ValueError):
        raise ValueError(f"Odds {odds!r} are not numeric.") from None
    if not math.isfinite(value) or value <= 0.0:
        raise ValueError(f"Odds {odds!r} must be a finite number > 0.")
    return value


def raw_implied_prob(odds: float) -> float:
    """Raw (overround-inclusive) implied probability of X-to-1 odds.

    Examples::

        raw_implied_prob(1)  → 0.5000   (evens)
        raw_implied_prob(4)  → 0.2000
        raw_implied_prob(15) → 0.0625
    """
    return 1.0 / (validate_odds(odds) + 1.0)


def normalise(values: Sequence[float]) -> list[float]:
    """Scale non-negative ``values`` so they sum to 1.0.

    The prediction engine relies on this being the *only* normalisation
    routine: applying it to identical inputs gives bit-identical outputs.

    Raises:
        ValueError: If the values sum to zero or less.
    """
    total = sum(values)
    if total <= 0.0:
        raise ValueError(f"Cannot normalise values summing to {total!r}.")
    return [v / total for v in values]


def implied_probabilities(odds: Sequence[float]) -> list[float]:
    """Overround-free implied probabilities for a full field.

    Args:
        odds: One X-to-1 price per contender.

    Returns:
        Probabilities in the same order, summing to 1.0.

    Example::

        implied_probabilities([2, 3, 4, 5, 8, 15])
        → [0.2967, 0.2225, 0.1780, 0.1483, 0.0989, 0.0556]
    """
    return normalise([raw_implied_prob(o) for o in odds])


def overround(odds: Sequence[float]) -> float:
    """Book overround: the amount by which raw implied probabilities exceed 1."""
    return sum(raw_implied_prob(o) for o in odds) - 1.0


# ---------------------------------------------------------------------------
# Bucket classification
# ---------------------------------------------------------------------------


def classify_odds(odds: float) -> str:
    """Map an odds value to its bucket key.

    Boundary policy (upper bounds inclusive)::

        odds ≤ 2        → "1-2"
        2 < odds ≤ 5    → "3-5"
        5 < odds ≤ 10   → "6-10"
        odds > 10       → "11-30"

    Total over all positive odds; prices below 1 fall in "1-2" and prices
    above 30 fall in "11-30".
    """
    value = validate_odds(odds)
    for upper, key in _BUCKET_UPPER_BOUNDS:
        if value <= upper:
            return key
    return BUCKET_KEYS[-1]


# ---------------------------------------------------------------------------
# Payout and profit/loss
# ---------------------------------------------------------------------------


def total_return(stake: float, odds: float) -> float:
    """Amount handed back on a winning bet (stake plus profit)."""
    return stake * (validate_odds(odds) + 1.0)


def settle_profit(stake: float, odds: float, won: bool) -> float:
    """Profit/loss of a single win bet.

    Examples::

        settle_profit(1000, 4, True)   →  4000.0
        settle_profit(1000, 4, False)  → -1000.0
        settle_profit(0, 4, True)      →     0.0   (skipped event)
    """
    if stake <= 0:
        return 0.0
    if won:
        return stake * validate_odds(odds)
    return -float(stake)
