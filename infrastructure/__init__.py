"""
Infrastructure layer: External dependencies and I/O boundaries.

Contains adapters for:
- AI vendors (Anthropic, OpenAI, Gemini, xAI, DeepSeek, Moonshot, Mock)
- Configuration loading (YAML, environment)
- Observability (logging, request log records, tracing)

This is the only layer that performs I/O operations.
"""

# Most commonly used - exposed at top level for convenience
from infrastructure.config import ChatSettings, ModelConfig, load_settings
from infrastructure.providers import ProviderAdapter, ProviderRegistry, build_default_registry

__all__ = [
    # Provider adapters (most commonly used)
    "build_default_registry",
    "ProviderRegistry",
    "ProviderAdapter",
    # Configuration (most commonly used)
    "load_settings",
    "ChatSettings",
    "ModelConfig",
]
