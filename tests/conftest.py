"""
Shared test configuration for piiscan.

Provides occurrence/entity factories, scripted scorers and mock LLM
transports used across the test modules.
"""

import json
import os
from typing import Dict, List, Optional

import httpx
import pytest

from piiscan.core.scoring.base import BaseScorer, ScoreResult
from piiscan.core.types import Entity, EntityKind, Occurrence
from piiscan.config import get_settings


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def make_occurrence(
    value: str,
    kind: EntityKind = EntityKind.EMAIL,
    start: int = 0,
    context: str = "",
    attributes: Optional[Dict[str, str]] = None,
) -> Occurrence:
    """Create an Occurrence whose span length matches the value."""
    return Occurrence(
        kind=kind,
        raw_value=value,
        span_start=start,
        span_end=start + len(value),
        context=context,
        attributes=attributes or {},
    )


def make_entity(
    value: str,
    kind: EntityKind = EntityKind.EMAIL,
    contexts: Optional[List[str]] = None,
    count: int = 1,
    attributes: Optional[Dict[str, str]] = None,
) -> Entity:
    """Create an Entity with sensible defaults."""
    return Entity(
        kind=kind,
        value=value,
        attributes=attributes or {},
        contexts=contexts if contexts is not None else [f"Reach {value} today."],
        occurrence_count=count,
    )


# =============================================================================
# SCORERS
# =============================================================================

class ScriptedScorer(BaseScorer):
    """Scorer that replays a list of results or exceptions, then repeats the last one."""

    provider_id = "scripted"
    model_id = "v0"

    def __init__(self, script, available: bool = True):
        self.script = list(script)
        self.calls: List[tuple] = []
        self.available = available

    def is_available(self) -> bool:
        return self.available

    def score(self, kind, value, context):
        self.calls.append((kind, value, context))
        step = self.script[min(len(self.calls), len(self.script)) - 1]
        if isinstance(step, Exception):
            raise step
        return step


class FixedScorer(BaseScorer):
    """Scorer returning one result per value, from a lookup table."""

    provider_id = "fixed"
    model_id = "table"

    def __init__(self, table: Dict[str, ScoreResult], default: Optional[ScoreResult] = None):
        self.table = table
        self.default = default or ScoreResult(accepted=True, confidence=0.9, reasoning="default")

    def score(self, kind, value, context):
        return self.table.get(value, self.default)


# =============================================================================
# LLM TRANSPORTS
# =============================================================================

def chat_transport(
    content: str,
    provider: str = "ollama",
    status_code: int = 200,
    models: Optional[List[str]] = None,
    seen: Optional[List[httpx.Request]] = None,
) -> httpx.MockTransport:
    """MockTransport answering chat calls with *content* in the provider's envelope."""

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if request.url.path.endswith("/api/tags"):
            names = models if models is not None else ["qwen2.5:3b"]
            return httpx.Response(200, json={"models": [{"name": n} for n in names]})
        if status_code != 200:
            return httpx.Response(status_code, json={"error": "boom"})
        if provider == "ollama":
            return httpx.Response(
                200,
                json={"message": {"role": "assistant", "content": content}, "eval_count": 7},
            )
        return httpx.Response(
            200,
            json={
                "choices": [{"message": {"role": "assistant", "content": content}}],
                "usage": {"total_tokens": 42},
            },
        )

    return httpx.MockTransport(handler)


def score_json(valid: bool, confidence: float, reasoning: str = "ok") -> str:
    return json.dumps({"valid": valid, "confidence": confidence, "reasoning": reasoning})


# =============================================================================
# SETTINGS
# =============================================================================

@pytest.fixture(autouse=True)
def clean_settings(monkeypatch, tmp_path):
    """Isolate every test from PIISCAN_* env vars, piiscan.yaml files and the settings cache."""
    for key in list(os.environ):
        if key.startswith("PIISCAN_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
