"""DeepSeek provider (OpenAI-compatible wire)."""

from functools import partial

from .base import Bounds, ParameterLimits, ProviderDescriptor
from .registry import ProviderRegistry
from .wire import OpenAICompatibleAdapter, OpenAICompatibleWire

DEEPSEEK_TOKEN_LIMITS: dict[str, int] = {
    "deepseek-chat": 4096,
    "deepseek-coder": 4096,
    "deepseek-reasoner": 8192,
}

DEEPSEEK_DESCRIPTOR = ProviderDescriptor(
    id="deepseek",
    display_name="DeepSeek",
    description="DeepSeek chat, coder and reasoner models",
    default_base_url="https://api.deepseek.com/v1",
    default_model="deepseek-chat",
    models=tuple(DEEPSEEK_TOKEN_LIMITS),
    api_key_url="https://platform.deepseek.com/api_keys",
    limits=ParameterLimits(
        temperature=Bounds(min=0, max=2, default=1),
        max_tokens=Bounds(min=1, max=8192, default=4096),
        top_p=Bounds(min=0, max=1, default=1),
    ),
)

DEEPSEEK_WIRE = OpenAICompatibleWire(
    descriptor=DEEPSEEK_DESCRIPTOR,
    token_limits=DEEPSEEK_TOKEN_LIMITS,
    default_token_limit=4096,
    # deepseek-reasoner ignores sampling parameters
    fixed_temperature_markers=("reasoner",),
)


def register(registry: ProviderRegistry) -> None:
    registry.register(DEEPSEEK_DESCRIPTOR, partial(OpenAICompatibleAdapter, wire=DEEPSEEK_WIRE))
