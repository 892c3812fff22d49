from typing import Any

from .models import AnthropicReasoning, GeminiReasoning, MoonshotReasoning, XAIReasoning

# Provider id -> reasoning options model
# Add future providers here
REASONING_MODEL_BY_PROVIDER: dict[str, type[Any]] = {
    "anthropic": AnthropicReasoning,
    "gemini": GeminiReasoning,
    "xai": XAIReasoning,
    "moonshot": MoonshotReasoning,
}
