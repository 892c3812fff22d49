"""Base adapter interface for AI vendor providers."""

import asyncio
import contextlib
import inspect
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar

from domain.cancellation import CancelSignal
from domain.errors import (
    ChatCoreError,
    ConfigInvalidError,
    EmptyConversationError,
    RequestCancelledError,
    VendorError,
)
from domain.schemas import ChatMessage, normalize_messages
from infrastructure.config.models import ModelConfig

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"^https?://.+")

ChunkSink = Callable[[str], None]


@dataclass(frozen=True)
class Bounds:
    """Inclusive numeric range with a default."""

    min: float
    max: float
    default: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    def clamp(self, value: float) -> float:
        return max(self.min, min(self.max, value))


@dataclass(frozen=True)
class ParameterLimits:
    temperature: Bounds
    max_tokens: Bounds
    top_p: Bounds | None = None


@dataclass(frozen=True)
class ProviderFeatures:
    streaming: bool = True
    system_prompt: bool = True
    vision: bool = False
    function_calling: bool = False


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static metadata about a vendor; available without credentials."""

    id: str
    display_name: str
    description: str
    default_base_url: str
    default_model: str
    models: tuple[str, ...]
    limits: ParameterLimits
    api_key_url: str = ""
    features: ProviderFeatures = field(default_factory=ProviderFeatures)


@dataclass(frozen=True)
class RequestOptions:
    """Per-call options. Unset numeric values fall back to the adapter config."""

    system_prompt: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    stop_sequences: tuple[str, ...] = ()
    on_chunk: ChunkSink | None = None
    signal: CancelSignal | None = None


def lookup_token_limit(model: str, table: Mapping[str, int], default: int) -> int:
    """Exact match, then the longest table key that prefixes `model`, then `default`."""
    if model in table:
        return table[model]
    prefixes = [key for key in table if model.startswith(key)]
    if prefixes:
        return table[max(prefixes, key=len)]
    return default


def normalize_base_url(url: str, strip_suffixes: Sequence[str] = ()) -> str:
    """Drop trailing slashes and one duplicated trailing path segment (e.g. '/v1')."""
    url = url.strip().rstrip("/")
    for suffix in strip_suffixes:
        if url.endswith(suffix):
            url = url[: -len(suffix)].rstrip("/")
            break
    return url


class ProviderAdapter(ABC):
    """
    Abstract base class for vendor adapters.
    Common interface for provider backends (Anthropic, OpenAI, Gemini, etc.).

    Instances are immutable: construct a new adapter when the config changes.

    All concrete adapters must implement:
    - _iter_chunks(): stream text deltas for a normalized conversation
    - _complete(): one non-streaming call returning the full text
    """

    descriptor: ProviderDescriptor

    # Trailing path segments stripped from user-supplied endpoints
    endpoint_suffixes: ClassVar[tuple[str, ...]] = ()

    config: ModelConfig
    base_url: str
    client: Any

    def __init__(self, config: ModelConfig, *, client: Any = None) -> None:
        result = self.validate_config(config)
        if result is not True:
            raise ConfigInvalidError(str(result), provider=self.provider_id)

        self.config = config
        self.base_url = normalize_base_url(
            config.base_url or self.default_base_url(),
            self.endpoint_suffixes,
        )
        for warning in self.config_warnings(config):
            logger.warning("[%s] %s", self.provider_id, warning)

        self.client = client if client is not None else self._make_client()

    @classmethod
    def from_cfg(cls, config: ModelConfig) -> "ProviderAdapter":
        """Registry factory hook."""
        return cls(config)

    def describe(self) -> ProviderDescriptor:
        return self.descriptor

    @property
    def provider_id(self) -> str:
        return self.descriptor.id

    @property
    def model(self) -> str:
        return self.config.model

    def default_base_url(self) -> str:
        return self.descriptor.default_base_url

    @abstractmethod
    def _make_client(self) -> Any:
        """Build the vendor SDK/HTTP client from self.config and self.base_url."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release the client's connection pool. Calling it twice is harmless."""
        # httpx exposes aclose(); the OpenAI and Anthropic async SDKs expose close()
        close = getattr(self.client, "aclose", None) or getattr(self.client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result
        logger.debug("[%s] Client closed", self.provider_id)

    # ------------------------------------------------------------------
    # Limits and validation
    # ------------------------------------------------------------------

    def available_models(self) -> list[str]:
        return list(self.descriptor.models)

    def supports_streaming(self) -> bool:
        return self.descriptor.features.streaming

    def supports_system_prompt(self) -> bool:
        return self.descriptor.features.system_prompt

    def max_token_limit(self, model: str) -> int:
        return int(self.descriptor.limits.max_tokens.max)

    def temperature_bounds(self, model: str) -> Bounds:
        return self.descriptor.limits.temperature

    def parameter_limits(self, model: str | None = None) -> ParameterLimits:
        model = model or (self.config.model if hasattr(self, "config") else self.descriptor.default_model)
        base = self.descriptor.limits
        limit = self.max_token_limit(model)
        return ParameterLimits(
            temperature=self.temperature_bounds(model),
            max_tokens=Bounds(min=base.max_tokens.min, max=limit, default=min(base.max_tokens.default, limit)),
            top_p=base.top_p,
        )

    def validate_config(self, config: ModelConfig) -> bool | str:
        """Return True, or a human-readable reason the config is unusable."""
        if not config.api_key or not config.api_key.strip():
            return "API key is required"
        if not config.model or not config.model.strip():
            return "Model is required"
        if config.base_url and not _URL_RE.match(config.base_url.strip()):
            return f"Invalid base URL: {config.base_url}"

        limits = self.parameter_limits(config.model)
        if config.temperature is not None and not limits.temperature.contains(config.temperature):
            return f"Temperature must be between {limits.temperature.min} and {limits.temperature.max}"
        if config.max_tokens is not None and not limits.max_tokens.contains(config.max_tokens):
            return (
                f"Max tokens must be between {int(limits.max_tokens.min)} and {int(limits.max_tokens.max)} "
                f"for model {config.model}"
            )

        return self._validate_vendor(config)

    def _validate_vendor(self, config: ModelConfig) -> bool | str:
        """Vendor-specific checks (hook)."""
        return True

    def config_warnings(self, config: ModelConfig) -> list[str]:
        """Non-fatal config oddities, logged at construction (hook)."""
        return []

    def effective_params(self, options: RequestOptions) -> tuple[int, float]:
        """Resolve (max_tokens, temperature) for a call, clamping out-of-range overrides."""
        limits = self.parameter_limits()

        max_tokens = options.max_tokens or self.config.max_tokens or int(limits.max_tokens.default)
        if not limits.max_tokens.contains(max_tokens):
            clamped = int(limits.max_tokens.clamp(max_tokens))
            logger.warning("[%s] max_tokens %d clamped to %d", self.provider_id, max_tokens, clamped)
            max_tokens = clamped

        temperature = options.temperature
        if temperature is None:
            temperature = self.config.temperature
        if temperature is None:
            temperature = limits.temperature.default
        if not limits.temperature.contains(temperature):
            clamped_t = limits.temperature.clamp(temperature)
            logger.warning(
                "[%s] Temperature %s clamped to %s (range: [%s, %s])",
                self.provider_id,
                temperature,
                clamped_t,
                limits.temperature.min,
                limits.temperature.max,
            )
            temperature = clamped_t

        return int(max_tokens), float(temperature)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    @abstractmethod
    def _iter_chunks(self, messages: list[ChatMessage], options: RequestOptions) -> AsyncIterator[str]:
        """Yield text deltas in receipt order (async generator)."""
        raise NotImplementedError

    @abstractmethod
    async def _complete(self, messages: list[ChatMessage], options: RequestOptions) -> str:
        raise NotImplementedError

    def _prepare(self, messages: Sequence[ChatMessage], options: RequestOptions) -> list[ChatMessage]:
        if options.signal is not None:
            options.signal.raise_if_cancelled()
        normalized = normalize_messages(messages)
        if not normalized:
            raise EmptyConversationError()
        return normalized

    async def send(self, messages: Sequence[ChatMessage], options: RequestOptions | None = None) -> str:
        """Non-streaming call. With an `on_chunk` sink it streams and returns the accumulated text.

        Raises the same errors as `stream`.
        """
        options = options or RequestOptions()

        if options.on_chunk is not None:
            parts: list[str] = []
            sink = options.on_chunk

            def _collect(chunk: str) -> None:
                parts.append(chunk)
                sink(chunk)

            await self.stream(messages, replace(options, on_chunk=_collect))
            return "".join(parts)

        normalized = self._prepare(messages, options)
        try:
            return await self._complete(normalized, options)
        except ChatCoreError:
            raise
        except asyncio.CancelledError:
            self._raise_if_signalled(options.signal)
            raise
        except Exception as e:
            raise VendorError(self.provider_id, str(e)) from e

    async def stream(self, messages: Sequence[ChatMessage], options: RequestOptions | None = None) -> None:
        """Chunked call: every non-empty delta goes to `options.on_chunk` in receipt order.

        Raises:
            EmptyConversationError: no message has non-whitespace content.
            RequestCancelledError: the signal was cancelled before or during the stream.
            VendorError: any transport or vendor failure.
        """
        options = options or RequestOptions()
        signal = options.signal
        normalized = self._prepare(messages, options)

        async with contextlib.aclosing(self._iter_chunks(normalized, options)) as chunks:
            while True:
                try:
                    chunk = await anext(chunks)
                except StopAsyncIteration:
                    break
                except ChatCoreError:
                    raise
                except asyncio.CancelledError:
                    self._raise_if_signalled(signal)
                    raise
                except Exception as e:
                    raise VendorError(self.provider_id, str(e)) from e

                if signal is not None and signal.cancelled:
                    break
                if chunk and options.on_chunk is not None:
                    options.on_chunk(chunk)

        if signal is not None:
            signal.raise_if_cancelled()

    @staticmethod
    def _raise_if_signalled(signal: CancelSignal | None) -> None:
        if signal is not None and signal.cancelled:
            raise RequestCancelledError(signal.cause) from None
