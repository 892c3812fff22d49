"""Anthropic provider adapter (Messages API over AsyncAnthropic)."""

import logging
from collections.abc import AsyncIterator
from typing import Any

from anthropic import AsyncAnthropic

from domain.schemas import ChatMessage
from infrastructure.config.models import AnthropicReasoning, ModelConfig

from .base import Bounds, ParameterLimits, ProviderAdapter, ProviderDescriptor, ProviderFeatures, RequestOptions
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)

ANTHROPIC_DESCRIPTOR = ProviderDescriptor(
    id="anthropic",
    display_name="Anthropic Claude",
    description="Claude models: Opus, Sonnet, Haiku",
    default_base_url="https://api.anthropic.com",
    default_model="claude-sonnet-4-5-20250929",
    models=(
        "claude-sonnet-4-5-20250929",
        "claude-sonnet-4-20250514",
        "claude-opus-4-20250514",
        "claude-3-7-sonnet-20250219",
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-5-sonnet-20240620",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
    ),
    api_key_url="https://console.anthropic.com/settings/keys",
    limits=ParameterLimits(
        temperature=Bounds(min=0, max=1, default=0.7),
        max_tokens=Bounds(min=1, max=8192, default=4096),
        top_p=Bounds(min=0, max=1, default=0.9),
    ),
    features=ProviderFeatures(vision=True, function_calling=True),
)


class AnthropicAdapter(ProviderAdapter):
    """Adapter for the Anthropic Messages API, with optional extended thinking."""

    descriptor = ANTHROPIC_DESCRIPTOR

    # The SDK appends /v1/messages itself
    endpoint_suffixes = ("/v1",)

    def _make_client(self) -> AsyncAnthropic:
        return AsyncAnthropic(api_key=self.config.api_key, base_url=self.base_url)

    def _validate_vendor(self, config: ModelConfig) -> bool | str:
        if not config.model.startswith("claude-"):
            return f"Invalid Anthropic model: {config.model}. Model must start with 'claude-'"
        if isinstance(config.reasoning, AnthropicReasoning):
            max_tokens = config.max_tokens or int(self.descriptor.limits.max_tokens.default)
            if config.reasoning.budget_tokens >= max_tokens:
                return (
                    f"Thinking budget ({config.reasoning.budget_tokens}) must be lower than "
                    f"max tokens ({max_tokens})"
                )
        return True

    def _request(self, messages: list[ChatMessage], options: RequestOptions) -> dict[str, Any]:
        max_tokens, temperature = self.effective_params(options)
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if options.system_prompt:
            kwargs["system"] = options.system_prompt
        if options.stop_sequences:
            kwargs["stop_sequences"] = list(options.stop_sequences)

        reasoning = self.config.reasoning
        if isinstance(reasoning, AnthropicReasoning) and reasoning.budget_tokens < max_tokens:
            # Temperature must stay at its default while thinking
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": reasoning.budget_tokens}
        else:
            if isinstance(reasoning, AnthropicReasoning):
                logger.warning(
                    "Thinking disabled for this call: budget %d >= max_tokens %d",
                    reasoning.budget_tokens,
                    max_tokens,
                )
            kwargs["temperature"] = temperature

        return kwargs

    async def _iter_chunks(self, messages: list[ChatMessage], options: RequestOptions) -> AsyncIterator[str]:
        stream = await self.client.messages.create(**self._request(messages, options), stream=True)
        try:
            async for event in stream:
                if getattr(event, "type", None) != "content_block_delta":
                    continue
                delta = event.delta
                # thinking_delta / signature_delta are not part of the reply text
                if getattr(delta, "type", None) == "text_delta" and delta.text:
                    yield delta.text
        finally:
            await stream.close()

    async def _complete(self, messages: list[ChatMessage], options: RequestOptions) -> str:
        message = await self.client.messages.create(**self._request(messages, options))
        return "".join(block.text for block in message.content if getattr(block, "type", None) == "text")


def register(registry: ProviderRegistry) -> None:
    registry.register(ANTHROPIC_DESCRIPTOR, AnthropicAdapter.from_cfg)
