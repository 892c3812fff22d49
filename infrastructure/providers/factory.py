"""Factory for building the provider registry."""

import importlib
import logging

from .registry import ProviderRegistry

logger = logging.getLogger(__name__)

# Registration order is the order list_providers() reports
BUILTIN_PROVIDERS: tuple[str, ...] = ("anthropic", "openai", "gemini", "xai", "deepseek", "moonshot")


def _import_provider_module(provider: str):
    """
    Import a provider module by convention.

    Convention:
      - Provider id MUST match the module filename under infrastructure/providers/
        e.g., "gemini" -> infrastructure/providers/gemini.py
      - The module exposes `register(registry)`.
    """
    module_name = f"{__package__}.{provider}"
    try:
        module = importlib.import_module(module_name)
    except ModuleNotFoundError as e:
        if getattr(e, "name", None) == module_name:
            raise RuntimeError(
                f"No provider module found for provider='{provider}'. "
                f"Expected file: infrastructure/providers/{provider}.py"
            ) from e
        raise

    if not hasattr(module, "register"):
        raise RuntimeError(f"Provider module {module_name} does not define register(registry).")
    return module


def build_default_registry(
    providers: tuple[str, ...] = BUILTIN_PROVIDERS,
    *,
    include_mock: bool = False,
) -> ProviderRegistry:
    """
    Build a registry with the built-in providers.

    Args:
        providers: Provider ids to register, in order
        include_mock: Also register the scripted Mock provider (tests / --mock)
    Returns:
        A new ProviderRegistry; callers own it and pass it on explicitly.
    """
    registry = ProviderRegistry()
    ids = list(providers) + (["mock"] if include_mock and "mock" not in providers else [])
    for provider in ids:
        _import_provider_module(provider).register(registry)

    logger.debug("Provider registry built: %s", registry.list_providers())
    return registry
