"""
piiscan Core Extraction Engine.

This module provides pattern extraction, deduplication, validation and
ensemble combination of sensitive values found in free text.

Usage:
    from piiscan.core import extract

    # Extract entities from text
    result = extract("Mail john@corp.io or call 415-555-0188.", locales=["US"])
    for entity in result.entities:
        print(f"{entity.kind}: {entity.value} x{entity.occurrence_count}")

    # Validate with the local rule scorer
    from piiscan.core import RuleScorer
    result = extract(text, scorer=RuleScorer())
    print(result.validation_summary)
"""

from __future__ import annotations

from typing import Iterable, Optional

from .cancellation import CancellationToken
from .context import ContextCache, extract_context
from .extractors import (
    BaseExtractor,
    EnsembleExtractor,
    ExtractionMethod,
    ExtractorRegistry,
    LLMExtractor,
    RegexExtractor,
)
from .matchers import MatcherRegistry, PatternMatcher, build_default_registry, compile_matcher
from .pipeline import (
    CombinationStrategy,
    EnsembleCombiner,
    EntityStore,
    ExtractionConfig,
    ExtractionPipeline,
    ValidationConfig,
    ValidationLayer,
    combine,
)
from .scoring import BaseScorer, LLMScorer, RuleScorer, ScoreResult, create_scorer
from .types import (
    AggregateResult,
    Entity,
    EntityKind,
    Occurrence,
    ValidationOutcome,
    ValidationSummary,
)

__all__ = [
    # Types
    "EntityKind",
    "Occurrence",
    "Entity",
    "ValidationOutcome",
    "ValidationSummary",
    "AggregateResult",
    # Context
    "extract_context",
    "ContextCache",
    "CancellationToken",
    # Matchers
    "PatternMatcher",
    "compile_matcher",
    "MatcherRegistry",
    "build_default_registry",
    # Pipeline
    "ExtractionConfig",
    "ValidationConfig",
    "ExtractionPipeline",
    "EntityStore",
    "ValidationLayer",
    "CombinationStrategy",
    "EnsembleCombiner",
    "combine",
    # Scoring
    "BaseScorer",
    "ScoreResult",
    "RuleScorer",
    "LLMScorer",
    "create_scorer",
    # Extractors
    "ExtractionMethod",
    "BaseExtractor",
    "RegexExtractor",
    "LLMExtractor",
    "EnsembleExtractor",
    "ExtractorRegistry",
    # Convenience
    "extract",
]


def extract(
    text: str,
    kinds: Optional[Iterable[str]] = None,
    locales: Optional[Iterable[str]] = None,
    scorer: BaseScorer | None = None,
    validation_config: ValidationConfig | None = None,
    timeout: float | None = None,
) -> AggregateResult:
    """
    One-shot regex extraction with the built-in matchers.

    Args:
        text: Text to scan
        kinds: Kind names to keep (default: all)
        locales: Locales to enable (default: all)
        scorer: Validate entities with this scorer when given
        validation_config: Retry / threshold tuning for validation
        timeout: Overall deadline in seconds

    Raises:
        FilterConfigurationError: Unknown kind or locale
        ExtractionCancelledError: Deadline passed
    """
    config = ExtractionConfig.from_names(kinds, locales)
    cancel = CancellationToken.with_timeout(timeout) if timeout is not None else None
    extractor = RegexExtractor(scorer=scorer)
    return extractor.extract(text, config, cancel, validation_config=validation_config)
