"""
Base scorer interface for the validation layer.

A scorer judges whether a candidate value is a genuine instance of its
claimed kind. It may be a rule engine, a remote API or a local model; the
validation layer only relies on score() and is_available().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..types import EntityKind


@dataclass(frozen=True)
class ScoreResult:
    """One scorer judgement."""
    accepted: bool
    confidence: float
    reasoning: str = ""

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Invalid confidence: {self.confidence}")


class BaseScorer(ABC):
    """
    Base class for all scorers.

    Each scorer:
    - Has a provider and model identity, recorded on every outcome
    - Takes (kind, value, context) and returns a ScoreResult
    - Raises on transient failure so the caller can retry

    Attributes:
        provider_id: Backend identity (e.g. "rules", "ollama", "openai")
        model_id: Model or rule-set version
    """

    provider_id: str = "base"
    model_id: str = ""

    @abstractmethod
    def score(self, kind: EntityKind, value: str, context: str) -> ScoreResult:
        """
        Judge one candidate.

        Args:
            kind: Claimed entity kind
            value: Candidate value
            context: Surrounding text

        Returns:
            ScoreResult with confidence in [0, 1]

        Raises:
            ScoringError: The call failed and may be retried
        """
        pass

    def is_available(self) -> bool:
        """
        Check if the scorer can be called at all.

        Override to check for reachable endpoints, API keys, etc.
        """
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider={self.provider_id!r}, model={self.model_id!r})"
