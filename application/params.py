"""
Request parameter resolution.

Each of model / max_tokens / temperature is taken from the first tier that sets it:

    REQUEST  -> per-request override
    VENDOR   -> stored per-provider record
    GLOBAL   -> global settings fallback
    DEFAULT  -> hardcoded final default

The tier is kept with the value: values the user chose for this vendor
(REQUEST, VENDOR) are validated strictly, while GLOBAL and DEFAULT values were
not chosen with this vendor in mind and are clamped into its bounds instead.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Generic, TypeVar

from application.constants import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE
from domain.errors import ConfigInvalidError
from infrastructure.config.models import ChatSettings, ProviderSettings
from infrastructure.providers.base import Bounds, ParameterLimits, ProviderDescriptor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Tier(str, Enum):
    REQUEST = "request"
    VENDOR = "vendor"
    GLOBAL = "global"
    DEFAULT = "default"


STRICT_TIERS = frozenset({Tier.REQUEST, Tier.VENDOR})


@dataclass(frozen=True)
class Resolved(Generic[T]):
    value: T
    tier: Tier


@dataclass(frozen=True)
class RequestOverrides:
    """Per-request values that win over every stored setting."""

    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    system_prompt: str | None = None
    stop_sequences: tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolvedParams:
    model: Resolved[str]
    max_tokens: Resolved[int]
    temperature: Resolved[float]


def resolve_model(
    overrides: RequestOverrides,
    record: ProviderSettings,
    descriptor: ProviderDescriptor,
) -> Resolved[str]:
    if overrides.model and overrides.model.strip():
        return Resolved(overrides.model.strip(), Tier.REQUEST)
    if record.model and record.model.strip():
        return Resolved(record.model.strip(), Tier.VENDOR)
    return Resolved(descriptor.default_model, Tier.DEFAULT)


def resolve_max_tokens(
    overrides: RequestOverrides,
    record: ProviderSettings,
    settings: ChatSettings,
) -> Resolved[int]:
    if overrides.max_tokens is not None:
        return Resolved(overrides.max_tokens, Tier.REQUEST)
    if record.max_tokens is not None and record.max_tokens > 0:
        return Resolved(record.max_tokens, Tier.VENDOR)
    if settings.max_tokens is not None and settings.max_tokens > 0:
        return Resolved(settings.max_tokens, Tier.GLOBAL)
    return Resolved(DEFAULT_MAX_TOKENS, Tier.DEFAULT)


def resolve_temperature(
    overrides: RequestOverrides,
    record: ProviderSettings,
    settings: ChatSettings,
) -> Resolved[float]:
    if overrides.temperature is not None:
        return Resolved(overrides.temperature, Tier.REQUEST)
    if record.temperature is not None and record.temperature >= 0:
        return Resolved(record.temperature, Tier.VENDOR)
    if settings.temperature is not None and settings.temperature >= 0:
        return Resolved(settings.temperature, Tier.GLOBAL)
    return Resolved(DEFAULT_TEMPERATURE, Tier.DEFAULT)


def resolve_params(
    overrides: RequestOverrides,
    settings: ChatSettings,
    provider: str,
    descriptor: ProviderDescriptor,
) -> ResolvedParams:
    record = settings.provider_settings(provider)
    return ResolvedParams(
        model=resolve_model(overrides, record, descriptor),
        max_tokens=resolve_max_tokens(overrides, record, settings),
        temperature=resolve_temperature(overrides, record, settings),
    )


def _fit(name: str, resolved: Resolved, bounds: Bounds, provider: str) -> Resolved:
    if bounds.contains(resolved.value):
        return resolved
    if resolved.tier in STRICT_TIERS:
        raise ConfigInvalidError(
            f"{name} {resolved.value} ({resolved.tier.value} setting) must be between {bounds.min} and {bounds.max}",
            provider=provider,
        )
    clamped = type(resolved.value)(bounds.clamp(resolved.value))
    logger.info(
        "%s %s from %s setting clamped to %s for %s",
        name,
        resolved.value,
        resolved.tier.value,
        clamped,
        provider,
    )
    return Resolved(clamped, resolved.tier)


def fit_to_limits(params: ResolvedParams, limits: ParameterLimits, provider: str) -> ResolvedParams:
    """
    Check resolved values against the vendor limits.

    Raises:
        ConfigInvalidError: a REQUEST or VENDOR value is out of bounds
    """
    return replace(
        params,
        max_tokens=_fit("max_tokens", params.max_tokens, limits.max_tokens, provider),
        temperature=_fit("temperature", params.temperature, limits.temperature, provider),
    )
