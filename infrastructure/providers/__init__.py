"""
AI vendor provider adapters.

Implements the adapter pattern for different vendors:
- Anthropic (Messages API, extended thinking)
- OpenAI, DeepSeek, xAI, Moonshot (one OpenAI-compatible adapter, per-vendor wire settings)
- Gemini (REST + SSE over httpx)
- Mock (for testing)

All adapters implement the ProviderAdapter interface and are built through a ProviderRegistry.
"""

from infrastructure.providers.base import (
    Bounds,
    ParameterLimits,
    ProviderAdapter,
    ProviderDescriptor,
    ProviderFeatures,
    RequestOptions,
    lookup_token_limit,
)
from infrastructure.providers.factory import build_default_registry
from infrastructure.providers.registry import ProviderRegistry
from infrastructure.providers.wire import OpenAICompatibleAdapter, OpenAICompatibleWire

__all__ = [
    # Abstract base and value types
    "ProviderAdapter",
    "ProviderDescriptor",
    "ProviderFeatures",
    "ParameterLimits",
    "Bounds",
    "RequestOptions",
    "lookup_token_limit",
    # Compatible wire
    "OpenAICompatibleWire",
    "OpenAICompatibleAdapter",
    # Registry (most commonly used)
    "ProviderRegistry",
    "build_default_registry",
]
