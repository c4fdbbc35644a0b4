"""
Scorers for the validation layer.

- RuleScorer: local checksums and structural rules
- LLMScorer: chat model judgement through piiscan.llm_client
"""

import logging

from ...llm_client import create_client
from .base import BaseScorer, ScoreResult
from .llm import LLMScorer, ScoreResponse, build_validation_prompt, parse_score_response
from .rules import RuleScorer

logger = logging.getLogger(__name__)

__all__ = [
    "BaseScorer",
    "ScoreResult",
    "RuleScorer",
    "LLMScorer",
    "ScoreResponse",
    "build_validation_prompt",
    "parse_score_response",
    "create_scorer",
]


def create_scorer(settings) -> BaseScorer:
    """
    Build a scorer from ValidationSettings.

    Args:
        settings: Object with provider, model, base_url, api_key and timeout
            attributes (piiscan.config.ValidationSettings)

    Raises:
        ValueError: Unknown provider
    """
    provider = (settings.provider or "rules").lower()
    if provider == "rules":
        return RuleScorer()

    api_key = settings.api_key.get_secret_value() if settings.api_key is not None else None
    client = create_client(
        provider=provider,
        model=settings.model,
        api_key=api_key,
        base_url=settings.base_url,
        timeout=settings.timeout,
    )
    logger.debug(f"Created {provider} scorer for model {client.model}")
    return LLMScorer(client)
