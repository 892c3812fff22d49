"""
Chat request orchestrator.

Owns the active adapter and at most one live request. A new request always
cancels the previous one first (no queueing). Streaming is guarded by a
watchdog; the final text runs through the filter pipeline, and one structured
log record is written per attempt.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from application.constants import DEFAULT_FEATURE, DEFAULT_STREAM_TIMEOUT_S, FILTERED_REPLACE_MARKER
from application.lifecycle import RequestHandle, RequestState, Watchdog, utc_now_iso
from application.params import RequestOverrides, ResolvedParams, Tier, fit_to_limits, resolve_params
from domain.errors import (
    CancelCause,
    ConfigInvalidError,
    NotConfiguredError,
    RequestCancelledError,
    UnknownProviderError,
)
from domain.filtering.middleware import REGEX_FILTER_RESULT_KEY, RegexFilterMiddleware
from domain.filtering.pipeline import FAILED_STAGES_KEY, FilterMiddleware, FilterPipeline
from domain.filtering.response_filter import ResponseFilter
from domain.filtering.rules import FilterRule
from domain.schemas import ChatMessage
from infrastructure.config.models import ChatSettings, ModelConfig, ProviderSettings
from infrastructure.observability.logging import clear_request_context, set_log_context
from infrastructure.observability.request_log import (
    ConfigSection,
    FilteringSection,
    LoggedMessage,
    PerformanceSection,
    RequestLogRecord,
    RequestLogWriter,
    RequestSection,
    ResponseSection,
    generate_request_id,
    mask_api_key,
)
from infrastructure.observability.tracing import annotate_span, traced
from infrastructure.providers.base import ProviderAdapter, RequestOptions
from infrastructure.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

MessageCallback = Callable[[str], None]
ErrorCallback = Callable[[Exception], None]
CompleteCallback = Callable[[], None]


class PresetRuleSource(Protocol):
    """Host collaborator that knows the filter rules attached to a preset."""

    def filter_rules_for(self, preset_id: str) -> Sequence[FilterRule]: ...


@dataclass
class _Attempt:
    """What one request actually used; feeds the log record."""

    provider: str
    messages: list[ChatMessage]
    model: str = ""
    temperature: float | None = None
    max_tokens: int | None = None
    system_prompt: str | None = None
    api_key: str = ""
    base_url: str = ""
    response: str | None = None
    filtered: str | None = None
    filtering: FilteringSection | None = None
    tiers: dict[str, str] = field(default_factory=dict)


class ChatOrchestrator:
    """Sends chat requests through the active provider, one at a time."""

    def __init__(
        self,
        settings: ChatSettings,
        registry: ProviderRegistry,
        *,
        request_log: RequestLogWriter | None = None,
        filter_stages: Sequence[FilterMiddleware] = (),
        preset_source: PresetRuleSource | None = None,
        stream_timeout_s: float | None = None,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._request_log = request_log
        self._preset_source = preset_source
        self._stream_timeout_s = stream_timeout_s

        # Raises FilterStageError here rather than on every request
        FilterPipeline(list(filter_stages))
        self._filter_stages = list(filter_stages)

        # Shared across requests so compiled patterns are reused
        self._response_filter = ResponseFilter()

        self._current: RequestHandle | None = None
        self._adapter = self._build_adapter()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def settings(self) -> ChatSettings:
        return self._settings

    @property
    def active_provider(self) -> str:
        return self._settings.active_provider

    @property
    def provider_name(self) -> str:
        if self._adapter is not None:
            return self._adapter.describe().display_name
        try:
            return self._registry.describe(self.active_provider).display_name
        except UnknownProviderError:
            return self.active_provider

    @property
    def state(self) -> RequestState:
        return self._current.state if self._current is not None else RequestState.IDLE

    @property
    def stream_timeout_s(self) -> float:
        if self._stream_timeout_s is not None:
            return self._stream_timeout_s
        return self._settings.stream_timeout_s or DEFAULT_STREAM_TIMEOUT_S

    def is_configured(self) -> bool:
        """True only when an adapter was built from the current settings."""
        return self._adapter is not None

    async def update_settings(self, settings: ChatSettings) -> None:
        """Replace settings and rebuild the adapter; an in-flight request is cancelled first."""
        if self._current is not None and self._current.active:
            self._current.cancel(CancelCause.SUPERSEDED)
        previous = self._adapter
        self._settings = settings
        self._adapter = self._build_adapter()
        if previous is not None:
            await self._close_adapter(previous)

    async def aclose(self) -> None:
        """Cancel any in-flight request and release the active adapter's client."""
        self.cancel()
        adapter, self._adapter = self._adapter, None
        if adapter is not None:
            await self._close_adapter(adapter)

    async def _close_adapter(self, adapter: ProviderAdapter) -> None:
        try:
            await adapter.aclose()
        except Exception:
            logger.warning("Failed to close %s client", adapter.provider_id, exc_info=True)

    def list_models(self) -> list[str]:
        if self._adapter is not None:
            return self._adapter.available_models()
        try:
            return list(self._registry.describe(self.active_provider).models)
        except UnknownProviderError:
            return []

    def get_filter_rules(self, preset_id: str | None = None) -> list[FilterRule]:
        """Global rules first, then the preset's rules. Lookup failures fall back to global rules."""
        rules = list(self._settings.filter_rules)
        if preset_id is None or self._preset_source is None:
            return rules
        try:
            preset_rules = list(self._preset_source.filter_rules_for(preset_id))
        except Exception:
            logger.warning("Failed to load filter rules for preset %s; using global rules only", preset_id, exc_info=True)
            return rules
        return rules + preset_rules

    def _build_adapter(self) -> ProviderAdapter | None:
        provider = self._settings.active_provider
        record = self._settings.provider_settings(provider)

        if not record.api_key.strip():
            logger.info("Provider %s not configured: no API key", provider)
            return None
        if not record.enabled:
            logger.info("Provider %s is disabled", provider)
            return None

        try:
            adapter = self._create_adapter(provider, record)
        except (UnknownProviderError, ConfigInvalidError) as e:
            logger.error("Failed to initialize provider %s: %s", provider, e)
            return None

        logger.info("Provider initialized: %s (model=%s)", provider, adapter.model)
        return adapter

    def _create_adapter(self, provider: str, record: ProviderSettings, *, model: str | None = None) -> ProviderAdapter:
        descriptor = self._registry.describe(provider)
        config = ModelConfig(
            provider=provider,
            model=model or (record.model or "").strip() or descriptor.default_model,
            api_key=record.api_key,
            base_url=record.base_url or None,
            max_tokens=record.max_tokens if record.max_tokens is not None and record.max_tokens > 0 else None,
            temperature=record.temperature if record.temperature is not None and record.temperature >= 0 else None,
            reasoning=record.reasoning,
        )
        return self._registry.create(config)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def cancel(self) -> bool:
        """Cancel the active request. No-op (returns False) when nothing is running."""
        handle = self._current
        if handle is None or not handle.active:
            return False
        return handle.cancel(CancelCause.USER)

    async def send_message(
        self,
        messages: Sequence[ChatMessage],
        *,
        on_message: MessageCallback,
        on_error: ErrorCallback,
        on_complete: CompleteCallback,
        feature: str = DEFAULT_FEATURE,
        preset_id: str | None = None,
        filter_rules: Sequence[FilterRule] | None = None,
        overrides: RequestOverrides | None = None,
    ) -> None:
        """
        Stream a reply to `on_message`.

        Every failure (including "not configured" and cancellation) goes to
        `on_error`; `on_complete` fires exactly once on every path. When filtering
        changes the reply, one extra message `FILTERED_REPLACE_MARKER + text`
        follows the last chunk.
        """
        handle = self._begin(feature)
        try:
            await self._run(
                handle,
                messages,
                on_message=on_message,
                preset_id=preset_id,
                filter_rules=filter_rules,
                overrides=overrides,
            )
        except Exception as e:
            on_error(e)
        finally:
            on_complete()

    async def send_simple(
        self,
        messages: Sequence[ChatMessage],
        *,
        feature: str = DEFAULT_FEATURE,
        preset_id: str | None = None,
        filter_rules: Sequence[FilterRule] | None = None,
        overrides: RequestOverrides | None = None,
    ) -> str:
        """
        Non-streaming request returning the filtered reply.

        Raises:
            NotConfiguredError: no usable adapter
            RequestCancelledError: cancelled or superseded while running
            VendorError: vendor or transport failure
        """
        handle = self._begin(feature)
        return await self._run(
            handle,
            messages,
            on_message=None,
            preset_id=preset_id,
            filter_rules=filter_rules,
            overrides=overrides,
        )

    def _begin(self, feature: str) -> RequestHandle:
        previous = self._current
        if previous is not None and previous.active:
            previous.cancel(CancelCause.SUPERSEDED)
        handle = RequestHandle(generate_request_id(), feature)
        self._current = handle
        return handle

    async def _run(
        self,
        handle: RequestHandle,
        messages: Sequence[ChatMessage],
        *,
        on_message: MessageCallback | None,
        preset_id: str | None,
        filter_rules: Sequence[FilterRule] | None,
        overrides: RequestOverrides | None,
    ) -> str:
        attempt = _Attempt(provider=self.active_provider, messages=list(messages))
        set_log_context(request_id=handle.request_id, feature=handle.feature, provider=attempt.provider)
        error: BaseException | None = None

        execute = self._execute
        if self._settings.tracing_enabled:
            execute = traced(f"chat.{handle.feature}", self._execute)

        try:
            return await execute(handle, attempt, on_message, preset_id, filter_rules, overrides or RequestOverrides())
        except RequestCancelledError as e:
            handle.state = RequestState.CANCELLED
            error = e
            logger.info("Request cancelled (cause=%s)", e.cause.value)
            raise
        except asyncio.CancelledError as e:
            handle.state = RequestState.CANCELLED
            error = e
            raise
        except Exception as e:
            handle.state = RequestState.FAILED
            error = e
            logger.error("Request failed: %s", e)
            raise
        finally:
            self._write_log(handle, attempt, error)
            clear_request_context()

    async def _execute(
        self,
        handle: RequestHandle,
        attempt: _Attempt,
        on_message: MessageCallback | None,
        preset_id: str | None,
        filter_rules: Sequence[FilterRule] | None,
        overrides: RequestOverrides,
    ) -> str:
        adapter, params = self._prepare(overrides)
        transient = adapter is not self._adapter
        try:
            return await self._call(handle, attempt, adapter, params, on_message, preset_id, filter_rules, overrides)
        finally:
            if transient:
                await self._close_adapter(adapter)

    async def _call(
        self,
        handle: RequestHandle,
        attempt: _Attempt,
        adapter: ProviderAdapter,
        params: ResolvedParams,
        on_message: MessageCallback | None,
        preset_id: str | None,
        filter_rules: Sequence[FilterRule] | None,
        overrides: RequestOverrides,
    ) -> str:
        system_prompt =overrides.system_prompt if overrides.system_prompt is not None else self._settings.system_prompt

        attempt.model = params.model.value
        attempt.max_tokens = params.max_tokens.value
        attempt.temperature = params.temperature.value
        attempt.system_prompt = system_prompt
        attempt.api_key = adapter.config.api_key
        attempt.base_url = adapter.base_url
        attempt.tiers = {
            "model": params.model.tier.value,
            "max_tokens": params.max_tokens.tier.value,
            "temperature": params.temperature.tier.value,
        }
        set_log_context(model=attempt.model)
        logger.debug("Resolved parameters: %s", attempt.tiers)

        options = RequestOptions(
            system_prompt=system_prompt,
            max_tokens=params.max_tokens.value,
            temperature=params.temperature.value,
            stop_sequences=overrides.stop_sequences,
            signal=handle.signal,
        )

        handle.signal.raise_if_cancelled()
        handle.state = RequestState.STREAMING
        if on_message is not None:
            text = await self._stream(handle, adapter, attempt.messages, options, on_message)
        else:
            text = await self._await_vendor(handle, adapter.send(attempt.messages, options))
        attempt.response = text

        handle.signal.raise_if_cancelled()
        handle.state = RequestState.FILTERING
        filtered = await self._filter(handle, attempt, text, preset_id, filter_rules)

        # A request superseded while filtering delivers nothing more
        handle.signal.raise_if_cancelled()
        if on_message is not None and filtered != text:
            on_message(FILTERED_REPLACE_MARKER + filtered)

        handle.state = RequestState.COMPLETED
        logger.info("Request completed in %dms (%d chars)", handle.elapsed_ms, len(filtered))

        if self._settings.tracing_enabled:
            annotate_span(
                name=f"chat.{handle.feature}.{attempt.provider}",
                metadata={
                    "request_id": handle.request_id,
                    "provider": attempt.provider,
                    "model": attempt.model,
                    "parameter_tiers": attempt.tiers,
                    "filtered": filtered != text,
                    "outcome": RequestState.COMPLETED.value,
                },
            )
        return filtered

    def _prepare(self, overrides: RequestOverrides) -> tuple[ProviderAdapter, ResolvedParams]:
        adapter = self._adapter
        if adapter is None:
            raise NotConfiguredError()

        provider = adapter.provider_id
        params = resolve_params(overrides, self._settings, provider, adapter.describe())

        if params.model.tier is Tier.REQUEST and params.model.value != adapter.model:
            # Adapters are immutable: a per-request model gets its own instance
            adapter = self._create_adapter(provider, self._settings.provider_settings(provider), model=params.model.value)

        return adapter, fit_to_limits(params, adapter.parameter_limits(), provider)

    async def _stream(
        self,
        handle: RequestHandle,
        adapter: ProviderAdapter,
        messages: list[ChatMessage],
        options: RequestOptions,
        on_message: MessageCallback,
    ) -> str:
        parts: list[str] = []
        watchdog = Watchdog(self.stream_timeout_s, lambda: handle.cancel(CancelCause.TIMEOUT))

        def sink(chunk: str) -> None:
            if handle.signal.cancelled or self._current is not handle:
                return
            watchdog.rearm()
            parts.append(chunk)
            on_message(chunk)

        stream_options = RequestOptions(
            system_prompt=options.system_prompt,
            max_tokens=options.max_tokens,
            temperature=options.temperature,
            stop_sequences=options.stop_sequences,
            on_chunk=sink,
            signal=options.signal,
        )

        watchdog.arm()
        try:
            await self._await_vendor(handle, adapter.stream(messages, stream_options))
        finally:
            watchdog.disarm()
        return "".join(parts)

    async def _await_vendor(self, handle: RequestHandle, call: Awaitable[T]) -> T:
        """Run the vendor call in its own task so cancel() can interrupt a blocked read."""
        handle.task = asyncio.ensure_future(call)
        try:
            return await handle.task
        except asyncio.CancelledError:
            if handle.signal.cancelled:
                raise RequestCancelledError(handle.signal.cause or CancelCause.USER) from None
            raise
        finally:
            handle.task = None

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    def _usable_rules(self, rules: Sequence[FilterRule]) -> list[FilterRule]:
        usable: list[FilterRule] = []
        for rule in rules:
            if not rule.enabled:
                continue
            check = self._response_filter.validate_pattern(rule.pattern, rule.flags)
            # Unsafe rules stay: the regex stage skips them with a warning
            if check.valid or check.unsafe:
                usable.append(rule)
            else:
                logger.warning('Ignoring filter rule "%s": %s', rule.name or rule.id, check.error)
        return usable

    async def _filter(
        self,
        handle: RequestHandle,
        attempt: _Attempt,
        text: str,
        preset_id: str | None,
        filter_rules: Sequence[FilterRule] | None,
    ) -> str:
        rules = list(filter_rules) if filter_rules is not None else self.get_filter_rules(preset_id)
        usable = self._usable_rules(rules)

        stages: list[FilterMiddleware] = []
        if usable:
            stages.append(RegexFilterMiddleware(usable, self._response_filter))
        stages.extend(self._filter_stages)
        if not stages:
            return text

        metadata: dict[str, Any] = {}
        filtered = await FilterPipeline(stages).execute(
            text,
            feature=handle.feature,
            preset_id=preset_id,
            metadata=metadata,
        )

        regex_result = metadata.get(REGEX_FILTER_RESULT_KEY)
        attempt.filtered = filtered
        attempt.filtering = FilteringSection(
            changed=filtered != text,
            applied_rules_count=regex_result.applied_rules_count if regex_result is not None else 0,
            original_length=len(text),
            filtered_length=len(filtered),
            failed_stages=list(metadata.get(FAILED_STAGES_KEY, [])),
        )
        if filtered != text:
            logger.info("Response filtered: %d -> %d chars", len(text), len(filtered))
        return filtered

    # ------------------------------------------------------------------
    # Request log
    # ------------------------------------------------------------------

    def _write_log(self, handle: RequestHandle, attempt: _Attempt, error: BaseException | None) -> None:
        if self._request_log is None or not self._settings.enable_request_logging:
            return
        try:
            self._request_log.write(self._build_record(handle, attempt, error))
        except Exception:
            logger.exception("Failed to write request log record")

    def _build_record(self, handle: RequestHandle, attempt: _Attempt, error: BaseException | None) -> RequestLogRecord:
        response = None
        if self._settings.request_log_include_response and attempt.response is not None:
            response = ResponseSection(
                content=attempt.response,
                filtered_content=attempt.filtered if attempt.filtered != attempt.response else None,
            )

        cancel_cause = error.cause.value if isinstance(error, RequestCancelledError) else None

        return RequestLogRecord(
            timestamp=handle.started_at,
            request_id=handle.request_id,
            feature=handle.feature,
            provider=attempt.provider,
            outcome=handle.state.value if not handle.active else RequestState.FAILED.value,
            cancel_cause=cancel_cause,
            error=str(error) if error is not None and not isinstance(error, asyncio.CancelledError) else None,
            request=RequestSection(
                model=attempt.model,
                temperature=attempt.temperature,
                max_tokens=attempt.max_tokens,
                system=attempt.system_prompt,
                messages=[LoggedMessage(role=m.role, content=m.content) for m in attempt.messages],
            ),
            response=response,
            performance=PerformanceSection(
                duration_ms=handle.elapsed_ms,
                started_at=handle.started_at,
                completed_at=utc_now_iso(),
            ),
            config=ConfigSection(api_key=mask_api_key(attempt.api_key), base_url=attempt.base_url),
            filtering=attempt.filtering,
        )
