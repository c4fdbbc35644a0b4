"""LLM-backed scorer.

Asks a chat model whether a candidate is a genuine instance of its kind.

The model is asked for JSON matching ScoreResponse:
    {"valid": true/false, "confidence": 0.0-1.0, "reasoning": "..."}

Responses are parsed with pydantic. Markdown fences and chatter around the
JSON object are tolerated. Only a response with no usable JSON falls back
to keyword matching, and that path is reported as such in the reasoning.

Architecture:
    [ValidationLayer] -> LLMScorer.score() -> [LLM client] -> ScoreResult
"""

from __future__ import annotations

import json
import logging
import re
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from ...exceptions import ScoringError
from ...llm_client import BaseLLMClient
from ..types import EntityKind
from .base import BaseScorer, ScoreResult

logger = logging.getLogger(__name__)

__all__ = [
    "ScoreResponse",
    "VALIDATION_GUIDANCE",
    "HEURISTIC_REASONING",
    "LLMScorer",
    "build_validation_prompt",
    "parse_score_response",
]

HEURISTIC_REASONING = "Heuristic parsing of scorer response"


class ScoreResponse(BaseModel):
    """Documented response schema for validation prompts."""

    valid: bool
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""


# =============================================================================
# PROMPTS
# =============================================================================

VALIDATION_GUIDANCE: Dict[EntityKind, str] = {
    EntityKind.PHONE: (
        "Phone number validation criteria:\n"
        "- Check if the number format is consistent with real phone numbers\n"
        "- Look for country codes, area codes, and proper digit grouping\n"
        "- Be wary of obviously fake numbers (like 555-0123, 123-456-7890)\n"
        "- Consider if the context suggests a real contact number vs. an example"
    ),
    EntityKind.EMAIL: (
        "Email validation criteria:\n"
        "- Verify the email has a realistic domain (not example.com, test.com, etc.)\n"
        "- Check if the local part (before @) looks genuine vs. obviously fake\n"
        "- Look for context clues about whether this is a real email or placeholder"
    ),
    EntityKind.SSN: (
        "SSN validation criteria:\n"
        "- Check for the XXX-XX-XXXX format\n"
        "- Be very wary of obviously fake SSNs (000-00-0000, 123-45-6789, etc.)\n"
        "- Look for context that suggests official documentation vs. examples"
    ),
    EntityKind.ZIP_CODE: (
        "Postal code validation criteria:\n"
        "- Check the format against the country given in the attributes, if any\n"
        "- Consider if the code matches geographic references in the context\n"
        "- Be wary of obviously fake codes (00000, 12345, etc.) and of numbers that "
        "are really quantities, years or prices"
    ),
    EntityKind.PO_BOX: (
        "P.O. Box validation criteria:\n"
        "- Check for a box number following 'P.O. Box' or a close variant\n"
        "- Look for context suggesting a mailing address vs. an example"
    ),
    EntityKind.STREET_ADDRESS: (
        "Street address validation criteria:\n"
        "- Check if the address format is realistic and well-formed\n"
        "- Look for real street names, not obviously fake ones (123 Main St is suspicious)\n"
        "- Consider if house numbers are reasonable for the street type"
    ),
    EntityKind.CREDIT_CARD: (
        "Credit card validation criteria:\n"
        "- Verify the number format matches known card types (Visa, MasterCard, etc.)\n"
        "- Check if it could pass the Luhn checksum\n"
        "- Be very suspicious of well-known test numbers (4111-1111-1111-1111, etc.)\n"
        "- Look for context suggesting a real transaction vs. test/example data"
    ),
    EntityKind.IP_ADDRESS: (
        "IP address validation criteria:\n"
        "- Verify the format is valid (IPv4: x.x.x.x, IPv6: proper format)\n"
        "- Check it is not an unspecified or reserved address such as 0.0.0.0\n"
        "- Consider if a private vs. public address makes sense in context"
    ),
    EntityKind.BTC_ADDRESS: (
        "Bitcoin address validation criteria:\n"
        "- Legacy addresses start with 1 or 3 and are 26-35 base58 characters\n"
        "- Base58 excludes 0, O, I and l\n"
        "- Look for context about wallets, payments or transactions"
    ),
    EntityKind.IBAN: (
        "IBAN validation criteria:\n"
        "- Starts with a two-letter country code followed by two check digits\n"
        "- Length should match the country's IBAN length\n"
        "- Look for banking context (account, transfer, beneficiary)"
    ),
}


def build_validation_prompt(
    kind: EntityKind,
    value: str,
    context: str,
) -> List[Dict[str, str]]:
    """Chat messages asking the model to judge one candidate."""
    name = kind.value.replace("_", " ")
    system = (
        "You are a PII validation expert. Decide whether the identified text is "
        f"actually a valid {name} in the given context. Respond only with JSON."
    )
    user = (
        f"PII Type: {name}\n"
        f"Identified Value: {json.dumps(value, ensure_ascii=False)}\n"
        f"Context: {json.dumps(context, ensure_ascii=False)}\n\n"
        f"{VALIDATION_GUIDANCE[kind]}\n\n"
        "General validation criteria:\n"
        "1. Is the format correct for this type of PII?\n"
        f"2. Does the context support that this is actually a {name}?\n"
        "3. Could this be a false positive (e.g., random numbers that look like PII)?\n"
        "4. Are there contextual indicators that suggest real vs. example/test data?\n\n"
        "Respond in JSON format:\n"
        '{"valid": true/false, "confidence": 0.0-1.0, "reasoning": "Brief explanation"}\n\n'
        "Be conservative - if you're unsure, mark as invalid with lower confidence."
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


# =============================================================================
# RESPONSE PARSING
# =============================================================================

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)

_ACCEPT_KEYWORDS = ("valid: true", '"valid": true', "is valid", "valid pii", "legitimate")
_REJECT_KEYWORDS = ("valid: false", '"valid": false', "invalid", "false positive", "not valid")


def _json_candidates(text: str) -> List[str]:
    """Substrings worth handing to the JSON parser, most specific first."""
    candidates = []
    fenced = _FENCE_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    candidates.append(text.strip())
    first, last = text.find("{"), text.rfind("}")
    if 0 <= first < last:
        candidates.append(text[first:last + 1])
    return candidates


def _heuristic(text: str) -> ScoreResult:
    lowered = text.lower()
    # Reject keywords first: "not valid" and "invalid" contain "valid"
    if any(k in lowered for k in _REJECT_KEYWORDS):
        return ScoreResult(accepted=False, confidence=0.7, reasoning=HEURISTIC_REASONING)
    if any(k in lowered for k in _ACCEPT_KEYWORDS):
        return ScoreResult(accepted=True, confidence=0.7, reasoning=HEURISTIC_REASONING)
    return ScoreResult(accepted=False, confidence=0.5, reasoning=HEURISTIC_REASONING)


def parse_score_response(text: str) -> ScoreResult:
    """Structured parse of a model reply, keyword heuristic as last resort."""
    for candidate in _json_candidates(text):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(data, dict):
            continue
        try:
            parsed = ScoreResponse.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Response JSON does not match schema: {e.error_count()} errors")
            continue
        return ScoreResult(
            accepted=parsed.valid,
            confidence=parsed.confidence,
            reasoning=parsed.reasoning,
        )

    logger.debug(f"Falling back to heuristic parsing for response: {text[:100]!r}")
    return _heuristic(text)


# =============================================================================
# SCORER
# =============================================================================


class LLMScorer(BaseScorer):
    """
    Scorer backed by a chat model.

    Usage:
        scorer = LLMScorer(create_client("ollama", model="qwen2.5:3b"))
        if scorer.is_available():
            result = scorer.score(EntityKind.EMAIL, "jane@corp.io", "Mail jane@corp.io today.")
    """

    def __init__(self, client: BaseLLMClient):
        self.client = client
        self.provider_id = client.provider
        self.model_id = client.model

    def is_available(self) -> bool:
        return self.client.is_available()

    def score(self, kind: EntityKind, value: str, context: str) -> ScoreResult:
        messages = build_validation_prompt(kind, value, context)
        response = self.client.chat(messages[1:], system=messages[0]["content"])
        if not response.success:
            raise ScoringError(
                response.error or "LLM call failed",
                provider=self.provider_id,
                model=self.model_id,
            )
        if not response.text.strip():
            raise ScoringError("Empty LLM response", provider=self.provider_id, model=self.model_id)

        result = parse_score_response(response.text)
        logger.debug(
            f"{self.provider_id}/{self.model_id} judged {kind.value}: "
            f"accepted={result.accepted} confidence={result.confidence:.2f} "
            f"({response.latency_ms:.0f}ms)"
        )
        return result
