"""Combines the entity sets of independent extractors into one set."""

from __future__ import annotations

import logging
from collections import Counter
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union

from ...exceptions import ConfigurationError, FilterConfigurationError
from ..types import AggregateResult, Entity
from .dedup import merge_entities

logger = logging.getLogger(__name__)

__all__ = [
    "CombinationStrategy",
    "EnsembleCombiner",
    "majority_threshold",
    "combine",
]

ResultSet = Union[AggregateResult, Sequence[Entity], None]


class CombinationStrategy(Enum):
    """How identities found by several sources are combined."""

    UNION = "union"                # Everything any source found
    INTERSECTION = "intersection"  # Only what every source found
    MAJORITY = "majority"          # What more than half of the sources found
    WEIGHTED = "weighted"          # Weighted majority; plain union without weights

    @classmethod
    def from_value(cls, value: "str | CombinationStrategy") -> "CombinationStrategy":
        if isinstance(value, CombinationStrategy):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise FilterConfigurationError(
                f"Unknown combination strategy: {value!r}. "
                f"Valid strategies: {', '.join(s.value for s in cls)}",
                field="strategy",
                value=str(value),
            ) from None


def majority_threshold(source_count: int) -> int:
    """Smallest count that is more than half of *source_count*."""
    return source_count // 2 + 1


def _entities_of(result_set: ResultSet) -> List[Entity]:
    if result_set is None:
        return []
    if isinstance(result_set, AggregateResult):
        return list(result_set.entities)
    return list(result_set)


def combine(
    result_sets: Sequence[ResultSet],
    strategy: CombinationStrategy | str = CombinationStrategy.UNION,
    weights: Optional[Sequence[float]] = None,
) -> List[Entity]:
    """
    Combine entity sets under *strategy*.

    Args:
        result_sets: One entry per source; None counts as an empty set
        strategy: Combination strategy
        weights: Per-source weights, only read by WEIGHTED

    Returns:
        New merged entities in order of first appearance across sources.
        Inputs are never modified.

    Raises:
        ConfigurationError: weights given with a length that does not match
    """
    strategy = CombinationStrategy.from_value(strategy)
    groups = [_entities_of(rs) for rs in result_sets]
    if not groups:
        return []

    # Each source votes once per identity, even if it lists it twice
    support: Counter = Counter()
    for group in groups:
        support.update({e.key for e in group})

    n = len(groups)
    keys: Optional[set] = None
    if strategy is CombinationStrategy.INTERSECTION:
        keys = {k for k, c in support.items() if c == n}
    elif strategy is CombinationStrategy.MAJORITY:
        threshold = majority_threshold(n)
        keys = {k for k, c in support.items() if c >= threshold}
    elif strategy is CombinationStrategy.WEIGHTED and weights is not None:
        keys = _weighted_keys(groups, weights)

    combined = merge_entities(groups, keys=keys)
    logger.debug(
        f"Combined {n} result sets with {strategy.value}: "
        f"{len(support)} identities in, {len(combined)} out"
    )
    return combined


def _weighted_keys(groups: List[List[Entity]], weights: Sequence[float]) -> set:
    if len(weights) != len(groups):
        raise ConfigurationError(
            f"Got {len(weights)} weights for {len(groups)} result sets",
            details={"field": "weights"},
        )
    if any(w < 0 for w in weights):
        raise ConfigurationError("Weights cannot be negative", details={"field": "weights"})

    total = float(sum(weights))
    score: Dict[str, float] = {}
    for group, weight in zip(groups, weights):
        for key in {e.key for e in group}:
            score[key] = score.get(key, 0.0) + weight
    return {k for k, s in score.items() if s > total / 2}


class EnsembleCombiner:
    """A combine() call with its strategy and weights bound."""

    def __init__(
        self,
        strategy: CombinationStrategy | str = CombinationStrategy.UNION,
        weights: Optional[Sequence[float]] = None,
    ):
        self.strategy = CombinationStrategy.from_value(strategy)
        self.weights = list(weights) if weights is not None else None

    def combine(self, result_sets: Sequence[ResultSet]) -> List[Entity]:
        return combine(result_sets, self.strategy, self.weights)

    def __repr__(self) -> str:
        return f"EnsembleCombiner(strategy={self.strategy.value!r}, weights={self.weights!r})"
