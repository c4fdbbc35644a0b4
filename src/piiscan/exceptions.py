"""
Unified exception hierarchy for piiscan.

All exception classes live here. No per-module exception files.

Hierarchy:
    PiiScanError (base)
    ├── ConfigurationError
    │   ├── PatternConfigurationError
    │   └── FilterConfigurationError
    ├── ExtractionError
    ├── ScoringError
    └── ExtractionCancelledError

Only ConfigurationError and ExtractionCancelledError escape an extract()
call. ExtractionError and ScoringError are absorbed by the pipeline and the
validation layer and show up in the result instead.

Usage:
    from piiscan.exceptions import FilterConfigurationError, ScoringError
"""

from __future__ import annotations

from typing import Any

# =============================================================================
# ROOT
# =============================================================================


class PiiScanError(Exception):
    """
    Base exception for all piiscan errors.

    Attributes:
        message: Human-readable error description
        context: Additional context about what was being done
        details: Technical details (matcher names, entity kinds, etc.)
    """

    def __init__(
        self,
        message: str,
        context: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.context = context
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [self.message]
        if self.context:
            parts.append(f"Context: {self.context}")
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            parts.append(f"Details: {detail_str}")
        return ". ".join(parts)


# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigurationError(PiiScanError):
    """Raised for setup-time problems. Never retried."""


class PatternConfigurationError(ConfigurationError):
    """Raised when a pattern definition cannot be compiled or is malformed."""

    def __init__(
        self,
        message: str,
        matcher_name: str | None = None,
        pattern: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if matcher_name:
            details["matcher"] = matcher_name
        if pattern:
            details["pattern"] = pattern
        super().__init__(message, details=details, **kwargs)
        self.matcher_name = matcher_name
        self.pattern = pattern


class FilterConfigurationError(ConfigurationError):
    """Raised when a kind, locale or strategy filter names something unknown."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        super().__init__(message, details=details, **kwargs)
        self.field = field
        self.value = value


# =============================================================================
# EXTRACTION & SCORING
# =============================================================================


class ExtractionError(PiiScanError):
    """Raised when a single matcher or extractor fails to process text."""

    def __init__(
        self,
        message: str,
        source_name: str | None = None,
        input_length: int | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if source_name:
            details["source"] = source_name
        if input_length is not None:
            details["input_length"] = input_length
        super().__init__(message, details=details, **kwargs)
        self.source_name = source_name
        self.input_length = input_length


class ScoringError(PiiScanError):
    """Raised when a scorer call fails or returns an unusable response."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        model: str | None = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if provider:
            details["provider"] = provider
        if model:
            details["model"] = model
        super().__init__(message, details=details, **kwargs)
        self.provider = provider
        self.model = model


# =============================================================================
# CANCELLATION
# =============================================================================


class ExtractionCancelledError(PiiScanError):
    """Raised when an extraction call is cancelled or its deadline passes."""

    def __init__(self, message: str = "Extraction cancelled", reason: str | None = None, **kwargs: Any):
        details = kwargs.pop("details", {})
        if reason:
            details["reason"] = reason
        super().__init__(message, details=details, **kwargs)
        self.reason = reason


__all__ = [
    "PiiScanError",
    "ConfigurationError",
    "PatternConfigurationError",
    "FilterConfigurationError",
    "ExtractionError",
    "ScoringError",
    "ExtractionCancelledError",
]
