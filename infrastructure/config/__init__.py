"""
Configuration management: models, loading, and validation.

Handles:
- ChatSettings: active provider, per-provider records, global fallbacks
- ModelConfig: immutable adapter configuration
- Reasoning options: one model per provider (tagged union)
- Environment variable credential fill

The loader module performs file I/O; models are pure Pydantic classes.
"""

from infrastructure.config.loader import api_key_env_var, load_settings
from infrastructure.config.models import (
    AnthropicReasoning,
    # Main config
    ChatSettings,
    GeminiReasoning,
    # Adapter config
    ModelConfig,
    MoonshotReasoning,
    ProviderSettings,
    # Reasoning options
    ReasoningOptions,
    XAIReasoning,
)

__all__ = [
    # Main config (most commonly used)
    "ChatSettings",
    "load_settings",
    "ProviderSettings",
    # Adapter config
    "ModelConfig",
    # Reasoning options
    "ReasoningOptions",
    "AnthropicReasoning",
    "GeminiReasoning",
    "XAIReasoning",
    "MoonshotReasoning",
    # Helpers
    "api_key_env_var",
]
