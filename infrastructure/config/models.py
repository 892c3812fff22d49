"""Configuration models (Pydantic classes)."""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from domain.filtering.rules import FilterRule


class AnthropicReasoning(BaseModel):
    """Claude extended thinking."""

    model_config = ConfigDict(frozen=True)

    provider: Literal["anthropic"] = "anthropic"
    budget_tokens: int = Field(default=2048, ge=1024)


class GeminiReasoning(BaseModel):
    """Gemini thinking budget; 0 disables thinking on models that allow it."""

    model_config = ConfigDict(frozen=True)

    provider: Literal["gemini"] = "gemini"
    budget_tokens: int = Field(default=8192, ge=0)


class XAIReasoning(BaseModel):
    """Grok reasoning effort."""

    model_config = ConfigDict(frozen=True)

    provider: Literal["xai"] = "xai"
    effort: Literal["low", "high"] = "low"


class MoonshotReasoning(BaseModel):
    """Kimi reasoning switch (no tunable parameters)."""

    model_config = ConfigDict(frozen=True)

    provider: Literal["moonshot"] = "moonshot"


ReasoningOptions = Annotated[
    AnthropicReasoning | GeminiReasoning | XAIReasoning | MoonshotReasoning,
    Field(discriminator="provider"),
]


class ModelConfig(BaseModel):
    """
    Everything an adapter needs to talk to one vendor.
    - Built by the orchestrator from ChatSettings (or directly in tests)
    - Frozen: a config change means a new adapter instance
    """

    model_config = ConfigDict(frozen=True)

    provider: str = Field(..., description="Registered provider id, e.g. 'anthropic'.")
    model: str = Field(default="", description="Vendor model id.")
    api_key: str = Field(default="", description="Opaque credential string.")
    base_url: str | None = Field(default=None, description="Custom endpoint; vendor default when None.")
    max_tokens: int | None = None
    temperature: float | None = None
    reasoning: ReasoningOptions | None = None

    @model_validator(mode="after")
    def _reasoning_matches_provider(self) -> "ModelConfig":
        if self.reasoning is not None and self.reasoning.provider != self.provider:
            raise ValueError(
                f"reasoning options for '{self.reasoning.provider}' cannot be used with provider '{self.provider}'"
            )
        return self


class ProviderSettings(BaseModel):
    """Stored per-vendor record."""

    api_key: str = ""
    base_url: str | None = None
    model: str | None = None
    enabled: bool = True
    max_tokens: int | None = None
    temperature: float | None = None
    reasoning: ReasoningOptions | None = None


class ChatSettings(BaseModel):
    """
    Host application settings consumed by the orchestrator.
    - Loaded from settings.yaml (see loader) or assembled by the host
    - Global max_tokens/temperature are fallbacks below the per-vendor record
    """

    active_provider: str = Field(default="anthropic", description="Provider id used for new requests.")
    providers: dict[str, ProviderSettings] = Field(default_factory=dict)

    # Global fallbacks
    max_tokens: int | None = Field(default=None, description="Fallback when the vendor record leaves it unset.")
    temperature: float | None = Field(default=None, description="Fallback when the vendor record leaves it unset.")
    system_prompt: str | None = None

    # Filtering
    filter_rules: list[FilterRule] = Field(default_factory=list)

    # Request log
    enable_request_logging: bool = True
    request_log_include_response: bool = False

    stream_timeout_s: float = Field(default=30.0, gt=0, description="Watchdog bound: max silence between chunks.")
    tracing_enabled: bool = Field(default=False, description="Wrap requests in Opik spans.")

    @model_validator(mode="after")
    def _validate(self) -> "ChatSettings":
        self.active_provider = self.active_provider.strip().lower()
        for name, record in self.providers.items():
            if record.reasoning is not None and record.reasoning.provider != name:
                raise ValueError(f"providers.{name}.reasoning is for '{record.reasoning.provider}', not '{name}'")
        return self

    def provider_settings(self, provider: str | None = None) -> ProviderSettings:
        """Return the stored record for a provider (an empty one if absent)."""
        return self.providers.get(provider or self.active_provider) or ProviderSettings()
