"""
Configuration management for piiscan.

Configuration is loaded from:
1. piiscan.yaml file
2. Environment variables (PIISCAN_ prefix, "__" between nested fields)
3. Default values (lowest priority)

Examples:
    PIISCAN_VALIDATION__PROVIDER=ollama
    PIISCAN_VALIDATION__MIN_CONFIDENCE=0.8
    PIISCAN_EXTRACTION__LOCALES='["US", "Germany"]'
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.constants import (
    CONTEXT_CACHE_MIN_MATCHES,
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_VALIDATION_TIMEOUT,
    MATCHER_TIMEOUT,
    PARALLEL_MATCHER_THRESHOLD,
    PARALLEL_TEXT_THRESHOLD,
)
from .core.pipeline.config import ExtractionConfig, ValidationConfig
from .core.pipeline.ensemble import CombinationStrategy


class ExtractionSettings(BaseSettings):
    """Pattern extraction configuration. Empty kinds/locales means all."""

    kinds: list[str] = Field(default_factory=list)
    locales: list[str] = Field(default_factory=list)
    parallel_text_threshold: int = PARALLEL_TEXT_THRESHOLD
    parallel_matcher_threshold: int = PARALLEL_MATCHER_THRESHOLD
    context_cache_min_matches: int = CONTEXT_CACHE_MIN_MATCHES
    max_workers: int | None = None
    timeout: float = MATCHER_TIMEOUT

    def to_config(self) -> ExtractionConfig:
        """Resolve kind and locale names. Raises FilterConfigurationError."""
        return ExtractionConfig.from_names(self.kinds, self.locales)


class ValidationSettings(BaseSettings):
    """Scorer selection and validation tuning."""

    enabled: bool = False
    provider: Literal["rules", "ollama", "openai"] = "rules"
    model: str | None = None
    base_url: str | None = None
    api_key: SecretStr | None = None
    timeout: float = DEFAULT_VALIDATION_TIMEOUT
    min_confidence: float = Field(default=DEFAULT_MIN_CONFIDENCE, ge=0.0, le=1.0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    backoff_seconds: float = Field(default=DEFAULT_BACKOFF_SECONDS, ge=0.0)

    @field_validator("provider", mode="before")
    @classmethod
    def normalize_provider(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    def to_config(self) -> ValidationConfig:
        return ValidationConfig(
            timeout=self.timeout,
            min_confidence=self.min_confidence,
            max_retries=self.max_retries,
            backoff_seconds=self.backoff_seconds,
        )


class EnsembleSettings(BaseSettings):
    """How regex and LLM extraction results are combined."""

    strategy: Literal["none", "union", "intersection", "majority", "weighted"] = "none"
    weights: list[float] | None = None

    @model_validator(mode="after")
    def validate_weights(self) -> "EnsembleSettings":
        if self.weights is not None and any(w < 0 for w in self.weights):
            raise ValueError("Ensemble weights cannot be negative")
        return self

    @property
    def is_enabled(self) -> bool:
        return self.strategy != "none"

    def to_strategy(self) -> CombinationStrategy | None:
        return CombinationStrategy.from_value(self.strategy) if self.is_enabled else None


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    format: Literal["text", "json"] = "text"
    file: str | None = None


class Settings(BaseSettings):
    """Main settings class that combines all configuration sections."""

    model_config = SettingsConfigDict(
        env_prefix="PIISCAN_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    ensemble: EnsembleSettings = Field(default_factory=EnsembleSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_yaml_config(path: Path | None = None) -> dict:
    """Load configuration from YAML file."""
    if path is None:
        candidates = [
            Path("piiscan.yaml"),
            Path("config/piiscan.yaml"),
        ]
        for candidate in candidates:
            if candidate.exists():
                path = candidate
                break

    if path and path.exists():
        with open(path) as f:
            return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    yaml_config = load_yaml_config()

    # Sections present in YAML are passed as init values; absent ones come from env
    return Settings(**yaml_config)


def reload_settings() -> Settings:
    """Force reload of settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
