"""OpenAI provider (Chat Completions over AsyncOpenAI)."""

from functools import partial

from .base import Bounds, ParameterLimits, ProviderDescriptor, ProviderFeatures
from .registry import ProviderRegistry
from .wire import OpenAICompatibleAdapter, OpenAICompatibleWire

# Max output tokens per model
OPENAI_TOKEN_LIMITS: dict[str, int] = {
    # GPT-4o family
    "gpt-4o": 16384,
    "gpt-4o-2024-11-20": 16384,
    "gpt-4o-2024-08-06": 16384,
    "gpt-4o-2024-05-13": 16384,
    "gpt-4o-mini": 16384,
    "gpt-4o-mini-2024-07-18": 16384,
    # Reasoning models
    "o1": 100000,
    "o1-2024-12-17": 100000,
    "o1-preview": 32768,
    "o1-mini": 65536,
    "o1-mini-2024-09-12": 65536,
    "o3-mini": 65536,
    # GPT-4 Turbo
    "gpt-4-turbo": 4096,
    "gpt-4-turbo-2024-04-09": 4096,
    "gpt-4-turbo-preview": 4096,
    "gpt-4-0125-preview": 4096,
    # GPT-4
    "gpt-4": 8192,
    "gpt-4-32k": 32768,
    # GPT-3.5
    "gpt-3.5-turbo": 4096,
    "gpt-3.5-turbo-16k": 16384,
}

OPENAI_DESCRIPTOR = ProviderDescriptor(
    id="openai",
    display_name="OpenAI",
    description="GPT-4o, o1, GPT-4 and GPT-3.5 models",
    default_base_url="https://api.openai.com/v1",
    default_model="gpt-4o",
    models=tuple(OPENAI_TOKEN_LIMITS),
    api_key_url="https://platform.openai.com/api-keys",
    limits=ParameterLimits(
        temperature=Bounds(min=0, max=2, default=1),
        max_tokens=Bounds(min=1, max=16384, default=4096),
        top_p=Bounds(min=0, max=1, default=1),
    ),
    features=ProviderFeatures(vision=True, function_calling=True),
)

OPENAI_WIRE = OpenAICompatibleWire(
    descriptor=OPENAI_DESCRIPTOR,
    token_limits=OPENAI_TOKEN_LIMITS,
    default_token_limit=4096,
    key_prefix="sk-",
)


def register(registry: ProviderRegistry) -> None:
    registry.register(OPENAI_DESCRIPTOR, partial(OpenAICompatibleAdapter, wire=OPENAI_WIRE))
