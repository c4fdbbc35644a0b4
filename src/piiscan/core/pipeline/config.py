"""Extraction and validation configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from ...exceptions import ConfigurationError, FilterConfigurationError
from ..constants import (
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_VALIDATION_TIMEOUT,
)
from ..types import EntityKind


@dataclass(frozen=True)
class ExtractionConfig:
    """Kind and locale filters for one extraction call.

    Empty sets mean "everything":
        config = ExtractionConfig()                                  # all kinds, all locales
        config = ExtractionConfig.from_names(kinds=["email"])        # emails only
        config = ExtractionConfig.from_names(locales=["US", "de"])   # US and German patterns
    """

    kinds: FrozenSet[EntityKind] = field(default_factory=frozenset)
    locales: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_names(
        cls,
        kinds: Optional[Iterable[str]] = None,
        locales: Optional[Iterable[str]] = None,
    ) -> ExtractionConfig:
        """Build from plain strings. Raises FilterConfigurationError on unknown kinds."""
        parsed = set()
        for name in kinds or ():
            try:
                parsed.add(EntityKind.from_value(name))
            except ValueError as e:
                raise FilterConfigurationError(str(e), field="kinds", value=str(name)) from e
        return cls(
            kinds=frozenset(parsed),
            locales=frozenset(loc.strip() for loc in (locales or ()) if loc.strip()),
        )

    @classmethod
    def all(cls) -> ExtractionConfig:
        return cls()


@dataclass(frozen=True)
class ValidationConfig:
    """Tuning for the validation layer.

    Attributes:
        timeout: Seconds allowed for one scorer call
        min_confidence: Outcomes below this are not attached
        max_retries: Extra attempts after the first failure
        backoff_seconds: Linear backoff unit (attempt * backoff_seconds)
    """

    timeout: float = DEFAULT_VALIDATION_TIMEOUT
    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ConfigurationError(
                f"timeout must be positive, got {self.timeout}", details={"field": "timeout"}
            )
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ConfigurationError(
                f"min_confidence must be within [0, 1], got {self.min_confidence}",
                details={"field": "min_confidence"},
            )
        if self.max_retries < 0:
            raise ConfigurationError(
                f"max_retries cannot be negative, got {self.max_retries}", details={"field": "max_retries"}
            )
        if self.backoff_seconds < 0:
            raise ConfigurationError(
                f"backoff_seconds cannot be negative, got {self.backoff_seconds}",
                details={"field": "backoff_seconds"},
            )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1
