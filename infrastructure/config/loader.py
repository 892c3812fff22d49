"""Configuration loading from YAML files."""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from domain.filtering.rules import FilterRule, builtin_template
from infrastructure.config.models import ChatSettings, ProviderSettings

from .registry import REASONING_MODEL_BY_PROVIDER

logger = logging.getLogger(__name__)


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return as dict."""
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ValueError(f"Expected YAML dict in {path}, got {type(data)}")

    return data


def api_key_env_var(provider: str) -> str:
    """Environment variable consulted for a provider credential, e.g. ANTHROPIC_API_KEY."""
    return f"{provider.upper()}_API_KEY"


def _parse_reasoning(provider: str, raw: Any) -> Any:
    """
    Bind a reasoning block to the provider's model.

    Accepts `true` (defaults), a mapping without the `provider` tag, or None/false.
    """
    if raw is None or raw is False:
        return None

    model_cls = REASONING_MODEL_BY_PROVIDER.get(provider)
    if model_cls is None:
        raise ValueError(f"Provider '{provider}' does not support reasoning options")

    if raw is True:
        return model_cls()
    if not isinstance(raw, dict):
        raise ValueError(f"providers.{provider}.reasoning must be a mapping or boolean, got {type(raw)}")

    params = {k: v for k, v in raw.items() if k != "provider"}
    return model_cls(**params)


def _parse_provider(provider: str, block: Any, env: Mapping[str, str]) -> ProviderSettings:
    if block is None:
        block = {}
    if not isinstance(block, dict):
        raise ValueError(f"providers.{provider} must be a mapping, got {type(block)}")

    data = dict(block)
    data["reasoning"] = _parse_reasoning(provider, data.get("reasoning"))

    if not str(data.get("api_key") or "").strip():
        env_key = env.get(api_key_env_var(provider), "")
        if env_key:
            logger.debug("Using %s for provider %s", api_key_env_var(provider), provider)
        data["api_key"] = env_key

    return ProviderSettings(**data)


def _parse_filter_rules(raw: Any) -> list[FilterRule]:
    """
    Parse the filter_rules list.

    Entries are either full rules or `{template: <builtin id>, enabled: ...}` references.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"filter_rules must be a list, got {type(raw)}")

    rules: list[FilterRule] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"filter_rules[{i}] must be a mapping, got {type(item)}")

        if "template" in item:
            overrides = {k: v for k, v in item.items() if k != "template"}
            try:
                base = builtin_template(str(item["template"]))
            except KeyError as e:
                raise ValueError(f"filter_rules[{i}]: {e.args[0]}") from e
            rules.append(base.model_copy(update=overrides))
        else:
            rules.append(FilterRule(**item))

    return rules


def load_settings(path: Path, *, env: Mapping[str, str] | None = None) -> ChatSettings:
    """
    Load settings.yaml and construct a validated ChatSettings.

    Conventions:
    - Each key under `providers` is a registered provider id.
    - Empty `api_key` values are filled from `<PROVIDER>_API_KEY` in the environment.
    - A provider listed only in the environment is added when it is the active provider.
    """
    env = os.environ if env is None else env
    raw = _load_yaml(path)

    active = str(raw.get("active_provider") or "anthropic").strip().lower()

    providers_raw = raw.get("providers") or {}
    if not isinstance(providers_raw, dict):
        raise ValueError(f"'providers' must be a mapping in {path}")

    providers = {
        str(name).strip().lower(): _parse_provider(str(name).strip().lower(), block, env)
        for name, block in providers_raw.items()
    }
    if active not in providers:
        providers[active] = _parse_provider(active, {}, env)

    settings_kwargs = {
        k: v
        for k, v in raw.items()
        if k not in {"active_provider", "providers", "filter_rules"}
    }

    settings = ChatSettings(
        active_provider=active,
        providers=providers,
        filter_rules=_parse_filter_rules(raw.get("filter_rules")),
        **settings_kwargs,
    )

    logger.info(
        "Loaded settings from %s (active_provider=%s, providers=%s, filter_rules=%d)",
        path,
        settings.active_provider,
        list(settings.providers),
        len(settings.filter_rules),
    )
    return settings
