"""
Strategy selection: which contender to back, or whether to skip.

Modes:
  safe        highest adjusted probability; never skips
  balanced    highest  P × prob + (1 − P) × max(0, edge), P = BALANCED_PROB_WEIGHT;
              skips when no contender has edge above MIN_EDGE
  value       highest edge; skips when that edge is below MIN_EDGE
  aggressive  highest edge among contenders priced above 5-to-1 with edge
              above MIN_EDGE; skips when none qualify

Ties go to the lowest contender index.
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from race_edge.core.bet_sizing import MIN_EDGE
from race_edge.core.records import StrategyMode

logger = logging.getLogger(__name__)

BALANCED_PROB_WEIGHT = float(os.getenv("BALANCED_PROB_WEIGHT", "0.6"))
AGGRESSIVE_MIN_ODDS = 5.0


@dataclass(slots=True, frozen=True)
class Recommendation:
    mode: str
    skip: bool
    index: Optional[int]
    reason: str


def _argmax(candidates: Sequence[int], score: Callable[[int], float]) -> int:
    # Strict comparison keeps the first (lowest) index on ties.
    best = candidates[0]
    for i in candidates[1:]:
        if score(i) > score(best):
            best = i
    return best


def recommend(
    mode: StrategyMode | str,
    odds: Sequence[float],
    adjusted_probabilities: Sequence[float],
    edges: Sequence[float],
) -> Recommendation:
    """Pick a contender under ``mode``.

    Raises:
        ValueError: Unknown mode, or input sequences of different lengths.
    """
    mode = StrategyMode(mode)
    if not (len(odds) == len(adjusted_probabilities) == len(edges)) or not odds:
        raise ValueError("odds, adjusted_probabilities and edges must be equal-length and non-empty")

    indices = list(range(len(odds)))

    if mode is StrategyMode.SAFE:
        best = _argmax(indices, lambda i: adjusted_probabilities[i])
        return Recommendation(
            mode.value, False, best,
            f"Highest adjusted probability ({adjusted_probabilities[best]:.1%})",
        )

    if mode is StrategyMode.BALANCED:
        if not any(e > MIN_EDGE for e in edges):
            return Recommendation(
                mode.value, True, None,
                f"No contender has an edge above {MIN_EDGE:.0%}",
            )
        edge_weight = 1.0 - BALANCED_PROB_WEIGHT
        best = _argmax(
            indices,
            lambda i: BALANCED_PROB_WEIGHT * adjusted_probabilities[i] + edge_weight * max(0.0, edges[i]),
        )
        return Recommendation(
            mode.value, False, best,
            f"Best probability/edge blend ({adjusted_probabilities[best]:.1%}, edge {edges[best]:+.1%})",
        )

    if mode is StrategyMode.VALUE:
        best = _argmax(indices, lambda i: edges[i])
        if edges[best] < MIN_EDGE:
            return Recommendation(
                mode.value, True, None,
                f"Best edge {edges[best]:+.1%} is below the {MIN_EDGE:.0%} threshold",
            )
        return Recommendation(mode.value, False, best, f"Largest value edge ({edges[best]:+.1%})")

    # Aggressive
    qualifying = [i for i in indices if odds[i] > AGGRESSIVE_MIN_ODDS and edges[i] > MIN_EDGE]
    if not qualifying:
        return Recommendation(
            mode.value, True, None,
            f"No contender above {AGGRESSIVE_MIN_ODDS:g}-to-1 has an edge above {MIN_EDGE:.0%}",
        )
    best = _argmax(qualifying, lambda i: edges[i])
    return Recommendation(
        mode.value, False, best,
        f"Longshot value at {odds[best]:g}-to-1 (edge {edges[best]:+.1%})",
    )
