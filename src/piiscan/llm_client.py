"""LLM client abstraction layer.

Supports multiple chat providers with a unified interface:
- ollama: local models through the Ollama chat API (JSON mode, temperature 0)
- openai: OpenAI and OpenAI-compatible endpoints (/chat/completions)

Clients never raise on transport errors; they return an unsuccessful
LLMResponse and let the caller decide whether to retry.
"""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx

from .core.constants import (
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_OLLAMA_URL,
    DEFAULT_OPENAI_MODEL,
    DEFAULT_OPENAI_URL,
    DEFAULT_VALIDATION_TIMEOUT,
)

logger = logging.getLogger(__name__)

__all__ = [
    "LLMResponse",
    "BaseLLMClient",
    "OllamaClient",
    "OpenAIClient",
    "create_client",
]


@dataclass
class LLMResponse:
    """Response from LLM."""
    success: bool
    text: str
    model: str
    provider: str
    tokens_used: int
    latency_ms: float
    error: Optional[str] = None


class BaseLLMClient(ABC):
    """Shared httpx plumbing for chat clients."""

    provider: str = "base"

    def __init__(
        self,
        model: str,
        base_url: str,
        timeout: float = DEFAULT_VALIDATION_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._headers(),
                transport=self._transport,
            )
        return self._client

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _failure(self, start: float, error: str) -> LLMResponse:
        return LLMResponse(
            success=False,
            text="",
            model=self.model,
            provider=self.provider,
            tokens_used=0,
            latency_ms=(time.time() - start) * 1000,
            error=error,
        )

    def is_available(self) -> bool:
        return True

    @abstractmethod
    def chat(self, messages: List[Dict[str, str]], system: Optional[str] = None) -> LLMResponse:
        """Send *messages* and return the reply. Transport errors come back as success=False."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model!r}, base_url={self.base_url!r})"


class OllamaClient(BaseLLMClient):
    """Local models served by Ollama."""

    provider = "ollama"

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_MODEL,
        base_url: str = DEFAULT_OLLAMA_URL,
        timeout: float = DEFAULT_VALIDATION_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        super().__init__(model, base_url, timeout, transport)
        self._available: Optional[bool] = None

    def is_available(self) -> bool:
        """Check if Ollama is running and the model is pulled."""
        if self._available is not None:
            return self._available

        try:
            resp = self._http().get("/api/tags", timeout=5.0)
            resp.raise_for_status()
            models = [m.get("name", "") for m in resp.json().get("models", [])]
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Ollama not available at {self.base_url}: {e}")
            self._available = False
            return False

        model_base = self.model.split(":")[0]
        self._available = any(model_base in m for m in models)
        if not self._available:
            logger.warning(
                f"Model {self.model} not found. Available: {models}. Run: ollama pull {self.model}"
            )
        return self._available

    def chat(self, messages: List[Dict[str, str]], system: Optional[str] = None) -> LLMResponse:
        start = time.time()
        chat_messages = ([{"role": "system", "content": system}] if system else []) + list(messages)
        payload = {
            "model": self.model,
            "messages": chat_messages,
            "stream": False,
            "format": "json",
            "options": {"temperature": 0},
        }
        try:
            resp = self._http().post("/api/chat", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Ollama request failed: {e}")
            return self._failure(start, str(e))

        text = data.get("message", {}).get("content", "") or data.get("response", "")
        tokens = int(data.get("prompt_eval_count", 0) or 0) + int(data.get("eval_count", 0) or 0)
        return LLMResponse(
            success=True,
            text=text,
            model=self.model,
            provider=self.provider,
            tokens_used=tokens,
            latency_ms=(time.time() - start) * 1000,
        )


class OpenAIClient(BaseLLMClient):
    """OpenAI and OpenAI-compatible chat completion endpoints."""

    provider = "openai"

    def __init__(
        self,
        model: str = DEFAULT_OPENAI_MODEL,
        base_url: str = DEFAULT_OPENAI_URL,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_VALIDATION_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        super().__init__(model, base_url, timeout, transport)

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def is_available(self) -> bool:
        """Check if API key is configured."""
        return bool(self.api_key)

    def chat(self, messages: List[Dict[str, str]], system: Optional[str] = None) -> LLMResponse:
        start = time.time()
        if not self.api_key:
            return self._failure(start, "OpenAI API key not configured")

        chat_messages = ([{"role": "system", "content": system}] if system else []) + list(messages)
        payload = {
            "model": self.model,
            "messages": chat_messages,
            "temperature": 0,
            "response_format": {"type": "json_object"},
        }
        try:
            resp = self._http().post("/chat/completions", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"OpenAI API error: {e}")
            return self._failure(start, str(e))

        choices = data.get("choices") or []
        text = choices[0].get("message", {}).get("content", "") if choices else ""
        usage = data.get("usage") or {}
        return LLMResponse(
            success=True,
            text=text or "",
            model=self.model,
            provider=self.provider,
            tokens_used=int(usage.get("total_tokens", 0) or 0),
            latency_ms=(time.time() - start) * 1000,
        )


def create_client(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: float = DEFAULT_VALIDATION_TIMEOUT,
    transport: httpx.BaseTransport | None = None,
) -> BaseLLMClient:
    """
    Create an LLM client for the specified provider.

    Args:
        provider: "ollama" or "openai". Auto-detected from model if not specified.
        model: Model name
        api_key: API key (openai). Falls back to OPENAI_API_KEY.
        base_url: Endpoint override, e.g. a self-hosted OpenAI-compatible server
        timeout: Request timeout in seconds
        transport: httpx transport override (tests)

    Example:
        client = create_client("ollama", model="qwen2.5:3b")
        response = client.chat([{"role": "user", "content": "Hello"}])
    """
    if provider is None and model:
        provider = "openai" if model.lower().startswith(("gpt", "o1", "o3")) else "ollama"

    if provider is not None and not provider.strip():
        raise ValueError("Provider cannot be an empty string")

    provider = (provider or "ollama").lower()

    if provider == "ollama":
        return OllamaClient(
            model=model or DEFAULT_OLLAMA_MODEL,
            base_url=base_url or DEFAULT_OLLAMA_URL,
            timeout=timeout,
            transport=transport,
        )
    elif provider == "openai":
        return OpenAIClient(
            model=model or DEFAULT_OPENAI_MODEL,
            base_url=base_url or DEFAULT_OPENAI_URL,
            api_key=api_key,
            timeout=timeout,
            transport=transport,
        )
    else:
        raise ValueError(f"Unknown provider: {provider}")
