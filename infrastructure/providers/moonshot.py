"""Moonshot AI (Kimi) provider (OpenAI-compatible wire)."""

from functools import partial
from typing import Any

from infrastructure.config.models import ModelConfig, MoonshotReasoning

from .base import Bounds, ParameterLimits, ProviderDescriptor
from .registry import ProviderRegistry
from .wire import OpenAICompatibleAdapter, OpenAICompatibleWire

# Context windows; max_tokens may use the whole window
MOONSHOT_CONTEXT_WINDOWS: dict[str, int] = {
    "kimi-k2-0905-preview": 262144,
    "kimi-k2-0711-preview": 131072,
    "kimi-k2-thinking": 262144,
    "kimi-k2-thinking-turbo": 262144,
    "moonshot-v1-128k": 131072,
    "moonshot-v1-32k": 32768,
    "moonshot-v1-8k": 8192,
}

MOONSHOT_DESCRIPTOR = ProviderDescriptor(
    id="moonshot",
    display_name="Moonshot AI (Kimi)",
    description="Kimi K2 models with up to 256K context and reasoning variants",
    default_base_url="https://api.moonshot.cn/v1",
    default_model="kimi-k2-0905-preview",
    models=tuple(MOONSHOT_CONTEXT_WINDOWS),
    api_key_url="https://platform.moonshot.cn/console/api-keys",
    limits=ParameterLimits(
        temperature=Bounds(min=0, max=1, default=1),
        max_tokens=Bounds(min=1, max=262144, default=4096),
        top_p=Bounds(min=0, max=1, default=1),
    ),
)


def _enable_reasoning(kwargs: dict[str, Any], config: ModelConfig) -> None:
    if isinstance(config.reasoning, MoonshotReasoning):
        # Not a named SDK parameter; goes into the JSON body as-is
        kwargs["extra_body"] = {"reasoning": True}


MOONSHOT_WIRE = OpenAICompatibleWire(
    descriptor=MOONSHOT_DESCRIPTOR,
    token_limits=MOONSHOT_CONTEXT_WINDOWS,
    default_token_limit=128000,
    strict_catalog=True,
    payload_hook=_enable_reasoning,
)


def register(registry: ProviderRegistry) -> None:
    registry.register(MOONSHOT_DESCRIPTOR, partial(OpenAICompatibleAdapter, wire=MOONSHOT_WIRE))
