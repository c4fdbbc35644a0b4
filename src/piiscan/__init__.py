"""
piiscan - Sensitive data extraction for free text

This package provides:
- Core: locale-aware pattern extraction, deduplication, validation, ensembles
- Scorers: local checksum rules and LLM-backed validation
- CLI: `piiscan scan` for files and stdin
"""

__version__ = "0.3.0"

from .core import AggregateResult, Entity, EntityKind, extract

__all__ = [
    "__version__",
    "AggregateResult",
    "Entity",
    "EntityKind",
    "extract",
]
