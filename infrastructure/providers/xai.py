"""xAI Grok provider (OpenAI-compatible wire)."""

from functools import partial
from typing import Any

from infrastructure.config.models import ModelConfig, XAIReasoning

from .base import Bounds, ParameterLimits, ProviderDescriptor, ProviderFeatures
from .registry import ProviderRegistry
from .wire import OpenAICompatibleAdapter, OpenAICompatibleWire

XAI_TOKEN_LIMITS: dict[str, int] = {
    "grok-beta": 8192,
    "grok-vision-beta": 8192,
}

XAI_DESCRIPTOR = ProviderDescriptor(
    id="xai",
    display_name="xAI Grok",
    description="Grok models from xAI",
    default_base_url="https://api.x.ai/v1",
    default_model="grok-beta",
    models=tuple(XAI_TOKEN_LIMITS),
    api_key_url="https://console.x.ai/api-keys",
    limits=ParameterLimits(
        temperature=Bounds(min=0, max=2, default=1),
        max_tokens=Bounds(min=1, max=8192, default=8192),
        top_p=Bounds(min=0, max=1, default=1),
    ),
    features=ProviderFeatures(vision=True),
)


def _add_reasoning_effort(kwargs: dict[str, Any], config: ModelConfig) -> None:
    if isinstance(config.reasoning, XAIReasoning):
        kwargs["reasoning_effort"] = config.reasoning.effort


XAI_WIRE = OpenAICompatibleWire(
    descriptor=XAI_DESCRIPTOR,
    token_limits=XAI_TOKEN_LIMITS,
    default_token_limit=8192,
    payload_hook=_add_reasoning_effort,
)


def register(registry: ProviderRegistry) -> None:
    registry.register(XAI_DESCRIPTOR, partial(OpenAICompatibleAdapter, wire=XAI_WIRE))
