"""
Pipeline components for piiscan extraction.

Main components:
- ExtractionPipeline: runs matchers sequentially or in a worker pool
- EntityStore: order-independent deduplication into canonical entities
- ValidationLayer: retrying, confidence-gated scorer calls
- EnsembleCombiner: union / intersection / majority / weighted combination
"""

from .config import ExtractionConfig, ValidationConfig
from .dedup import EntityStore, merge_entities, merge_occurrences
from .ensemble import CombinationStrategy, EnsembleCombiner, combine, majority_threshold
from .extraction import ExtractionPipeline, ExtractionRun
from .validation import ValidationLayer, summarize, validation_context

__all__ = [
    # Config
    "ExtractionConfig",
    "ValidationConfig",
    # Extraction
    "ExtractionPipeline",
    "ExtractionRun",
    # Dedup
    "EntityStore",
    "merge_entities",
    "merge_occurrences",
    # Validation
    "ValidationLayer",
    "summarize",
    "validation_context",
    # Ensemble
    "CombinationStrategy",
    "EnsembleCombiner",
    "combine",
    "majority_threshold",
]
