"""Google Gemini provider adapter (Generative Language REST API over httpx)."""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from domain.schemas import ChatMessage
from infrastructure.config.models import GeminiReasoning, ModelConfig

from .base import (
    Bounds,
    ParameterLimits,
    ProviderAdapter,
    ProviderDescriptor,
    ProviderFeatures,
    RequestOptions,
    lookup_token_limit,
)
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)

API_VERSION = "v1beta"

# Max output tokens per model
GEMINI_TOKEN_LIMITS: dict[str, int] = {
    "gemini-2.5-pro": 8192,
    "gemini-2.5-flash": 8192,
    "gemini-2.5-flash-lite": 8192,
    "gemini-2.5-flash-image": 8192,
    "gemini-2.5-flash-preview": 8192,
    "gemini-2.0-flash": 8192,
    "gemini-2.0-flash-001": 8192,
    "gemini-2.0-flash-exp": 8192,
    "gemini-2.0-flash-lite": 8192,
    "gemini-1.5-pro": 8192,
    "gemini-1.5-pro-latest": 8192,
    "gemini-1.5-flash": 8192,
    "gemini-1.5-flash-latest": 8192,
    "gemini-1.5-flash-8b": 8192,
    "gemini-pro": 8192,
    "gemini-pro-vision": 4096,
    "gemini-ultra": 8192,
}

GEMINI_DESCRIPTOR = ProviderDescriptor(
    id="gemini",
    display_name="Google Gemini",
    description="Gemini 2.5, 2.0 and 1.5 models from Google AI",
    default_base_url="https://generativelanguage.googleapis.com",
    default_model="gemini-2.5-flash",
    models=(
        "gemini-2.5-pro",
        "gemini-2.5-flash",
        "gemini-2.5-flash-lite",
        "gemini-2.5-flash-image",
        "gemini-2.5-flash-preview-09-2025",
        "gemini-2.0-flash",
        "gemini-2.0-flash-001",
        "gemini-2.0-flash-exp",
        "gemini-2.0-flash-lite",
        "gemini-1.5-pro-latest",
        "gemini-1.5-pro",
        "gemini-1.5-flash-latest",
        "gemini-1.5-flash",
        "gemini-1.5-flash-8b",
        "gemini-pro",
        "gemini-pro-vision",
    ),
    api_key_url="https://makersuite.google.com/app/apikey",
    limits=ParameterLimits(
        temperature=Bounds(min=0, max=2, default=0.9),
        max_tokens=Bounds(min=1, max=8192, default=8192),
        top_p=Bounds(min=0, max=1, default=0.95),
    ),
    features=ProviderFeatures(vision=True, function_calling=True),
)


def to_gemini_contents(messages: list[ChatMessage], system_prompt: str | None) -> list[dict[str, Any]]:
    """
    Map chat messages to Gemini `contents`.

    Gemini has no system role here: the system prompt is prepended to the first
    user message (or becomes its own user turn when there is none).
    """
    turns = [(m.role, m.content) for m in messages]

    if system_prompt and system_prompt.strip():
        system_text = system_prompt.strip()
        first_user = next((i for i, (role, _) in enumerate(turns) if role == "user"), None)
        if first_user is None:
            turns.insert(0, ("user", system_text))
        else:
            turns[first_user] = ("user", f"{system_text}\n\n{turns[first_user][1]}")

    return [
        {"role": "user" if role == "user" else "model", "parts": [{"text": text}]}
        for role, text in turns
    ]


def _candidate_text(payload: dict[str, Any]) -> str:
    candidates = payload.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    # Thought summaries are flagged with "thought": true
    return "".join(p.get("text", "") for p in parts if not p.get("thought"))


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:200]}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return f"HTTP {response.status_code}: {error['message']}"
    return f"HTTP {response.status_code}"


class GeminiAdapter(ProviderAdapter):
    """Adapter for the Gemini generateContent / streamGenerateContent endpoints."""

    descriptor = GEMINI_DESCRIPTOR

    # Paths below are built with the version segment
    endpoint_suffixes = (f"/{API_VERSION}",)

    def _make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"x-goog-api-key": self.config.api_key},
            timeout=httpx.Timeout(60.0),
        )

    def max_token_limit(self, model: str) -> int:
        return lookup_token_limit(model, GEMINI_TOKEN_LIMITS, 8192)

    def config_warnings(self, config: ModelConfig) -> list[str]:
        warnings: list[str] = []
        if not config.api_key.startswith("AIza"):
            warnings.append(f"API key format warning: expected to start with 'AIza', got '{config.api_key[:4]}...'")
        if config.model not in self.descriptor.models and not config.model.startswith("gemini-"):
            warnings.append(f"Unknown model: {config.model}, proceeding anyway")
        return warnings

    def _body(self, messages: list[ChatMessage], options: RequestOptions) -> dict[str, Any]:
        max_tokens, temperature = self.effective_params(options)
        generation_config: dict[str, Any] = {
            "maxOutputTokens": max_tokens,
            "temperature": temperature,
        }
        if options.stop_sequences:
            generation_config["stopSequences"] = list(options.stop_sequences)
        if isinstance(self.config.reasoning, GeminiReasoning):
            generation_config["thinkingConfig"] = {"thinkingBudget": self.config.reasoning.budget_tokens}

        return {
            "contents": to_gemini_contents(messages, options.system_prompt),
            "generationConfig": generation_config,
        }

    def _path(self, method: str) -> str:
        return f"/{API_VERSION}/models/{self.model}:{method}"

    async def _iter_chunks(self, messages: list[ChatMessage], options: RequestOptions) -> AsyncIterator[str]:
        async with self.client.stream(
            "POST",
            self._path("streamGenerateContent"),
            params={"alt": "sse"},
            json=self._body(messages, options),
        ) as response:
            if response.status_code >= 400:
                await response.aread()
                raise RuntimeError(_error_message(response))

            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[len("data:") :].strip()
                if not data:
                    continue
                text = _candidate_text(json.loads(data))
                if text:
                    yield text

    async def _complete(self, messages: list[ChatMessage], options: RequestOptions) -> str:
        response = await self.client.post(self._path("generateContent"), json=self._body(messages, options))
        if response.status_code >= 400:
            raise RuntimeError(_error_message(response))
        return _candidate_text(response.json())


def register(registry: ProviderRegistry) -> None:
    registry.register(GEMINI_DESCRIPTOR, GeminiAdapter.from_cfg)
