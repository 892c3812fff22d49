"""
OpenAI-compatible wire protocol.

OpenAI, DeepSeek, xAI and Moonshot all speak the Chat Completions shape. The
differences (endpoint, model catalog, token limits, temperature range, a few
extra request fields) live in an OpenAICompatibleWire value; a single
OpenAICompatibleAdapter class talks to any of them.
"""

import logging
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from openai import AsyncOpenAI

from domain.schemas import ChatMessage
from infrastructure.config.models import ModelConfig

from .base import Bounds, ProviderAdapter, ProviderDescriptor, RequestOptions, lookup_token_limit

logger = logging.getLogger(__name__)

# (request kwargs, adapter config) -> None; mutates kwargs in place
PayloadHook = Callable[[dict[str, Any], ModelConfig], None]


@dataclass(frozen=True)
class OpenAICompatibleWire:
    """Per-vendor parameters for the Chat Completions wire format."""

    descriptor: ProviderDescriptor
    token_limits: Mapping[str, int] = field(default_factory=dict)
    default_token_limit: int = 4096

    # Models containing one of these markers take no temperature (fixed at 0, omitted on the wire)
    fixed_temperature_markers: tuple[str, ...] = ()

    # Reject models outside descriptor.models instead of warning
    strict_catalog: bool = False

    # Credential prefix the vendor issues; other prefixes only warn
    key_prefix: str | None = None

    payload_hook: PayloadHook | None = None

    def max_token_limit(self, model: str) -> int:
        return lookup_token_limit(model, self.token_limits, self.default_token_limit)

    def has_fixed_temperature(self, model: str) -> bool:
        return any(marker in model for marker in self.fixed_temperature_markers)

    def temperature_bounds(self, model: str) -> Bounds:
        if self.has_fixed_temperature(model):
            return Bounds(min=0, max=0, default=0)
        return self.descriptor.limits.temperature

    def build_messages(self, messages: list[ChatMessage], system_prompt: str | None) -> list[dict[str, str]]:
        out: list[dict[str, str]] = []
        if system_prompt:
            out.append({"role": "system", "content": system_prompt})
        out.extend({"role": m.role, "content": m.content} for m in messages)
        return out

    def build_request(
        self,
        *,
        config: ModelConfig,
        messages: list[ChatMessage],
        options: RequestOptions,
        max_tokens: int,
        temperature: float,
        stream: bool,
    ) -> dict[str, Any]:
        """Chat Completions kwargs for `client.chat.completions.create`."""
        kwargs: dict[str, Any] = {
            "model": config.model,
            "messages": self.build_messages(messages, options.system_prompt),
            "max_tokens": max_tokens,
            "stream": stream,
        }
        if not self.has_fixed_temperature(config.model):
            kwargs["temperature"] = temperature
        if options.stop_sequences:
            kwargs["stop"] = list(options.stop_sequences)
        if self.payload_hook is not None:
            self.payload_hook(kwargs, config)
        return kwargs

    @staticmethod
    def extract_delta(chunk: Any) -> str:
        choices = getattr(chunk, "choices", None) or []
        if not choices:
            return ""
        delta = getattr(choices[0], "delta", None)
        return (getattr(delta, "content", None) or "") if delta is not None else ""

    @staticmethod
    def extract_text(completion: Any) -> str:
        choices = getattr(completion, "choices", None) or []
        if not choices:
            raise ValueError("No response choices returned")
        return choices[0].message.content or ""


class OpenAICompatibleAdapter(ProviderAdapter):
    """Adapter for any vendor exposing the OpenAI Chat Completions API."""

    endpoint_suffixes = ("/chat/completions",)

    def __init__(self, config: ModelConfig, *, wire: OpenAICompatibleWire, client: Any = None) -> None:
        self.wire = wire
        self.descriptor = wire.descriptor
        super().__init__(config, client=client)

    def _make_client(self) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=self.config.api_key, base_url=self.base_url)

    def max_token_limit(self, model: str) -> int:
        return self.wire.max_token_limit(model)

    def temperature_bounds(self, model: str) -> Bounds:
        return self.wire.temperature_bounds(model)

    def _validate_vendor(self, config: ModelConfig) -> bool | str:
        if self.wire.strict_catalog and config.model not in self.descriptor.models:
            return f"Invalid model: {config.model}. Available: {', '.join(self.descriptor.models)}"
        return True

    def config_warnings(self, config: ModelConfig) -> list[str]:
        warnings: list[str] = []
        if self.wire.key_prefix and not config.api_key.startswith(self.wire.key_prefix):
            warnings.append(f"API key does not start with '{self.wire.key_prefix}'")
        if not self.wire.strict_catalog and config.model not in self.descriptor.models:
            warnings.append(f"Unknown model: {config.model}, proceeding anyway")
        return warnings

    def _request(self, messages: list[ChatMessage], options: RequestOptions, *, stream: bool) -> dict[str, Any]:
        max_tokens, temperature = self.effective_params(options)
        return self.wire.build_request(
            config=self.config,
            messages=messages,
            options=options,
            max_tokens=max_tokens,
            temperature=temperature,
            stream=stream,
        )

    async def _iter_chunks(self, messages: list[ChatMessage], options: RequestOptions) -> AsyncIterator[str]:
        response = await self.client.chat.completions.create(**self._request(messages, options, stream=True))
        try:
            async for chunk in response:
                text = self.wire.extract_delta(chunk)
                if text:
                    yield text
        finally:
            await response.close()

    async def _complete(self, messages: list[ChatMessage], options: RequestOptions) -> str:
        completion = await self.client.chat.completions.create(**self._request(messages, options, stream=False))
        return self.wire.extract_text(completion)
