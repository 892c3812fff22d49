import logging
from collections.abc import Callable

from domain.errors import ConfigInvalidError, UnknownProviderError
from infrastructure.config.models import ModelConfig

from .base import ProviderAdapter, ProviderDescriptor

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[ModelConfig], ProviderAdapter]


class ProviderRegistry:
    """Provider id -> (descriptor, adapter factory).

    Built once at startup (see factory.build_default_registry) and passed to the
    orchestrator explicitly.
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[ProviderDescriptor, AdapterFactory]] = {}

    def register(self, descriptor: ProviderDescriptor, factory: AdapterFactory) -> None:
        """Register (or replace) the factory for `descriptor.id`. Last write wins."""
        if descriptor.id in self._entries:
            logger.debug("Replacing adapter factory for provider=%s", descriptor.id)
        self._entries[descriptor.id] = (descriptor, factory)
        logger.debug("Registered adapter for provider=%s", descriptor.id)

    def is_registered(self, provider_id: str) -> bool:
        return provider_id in self._entries

    def list_providers(self) -> list[str]:
        """Registered provider ids in registration order."""
        return list(self._entries)

    def descriptors(self) -> list[ProviderDescriptor]:
        return [descriptor for descriptor, _ in self._entries.values()]

    def describe(self, provider_id: str) -> ProviderDescriptor:
        """Static metadata for a provider; never builds an adapter."""
        entry = self._entries.get(provider_id)
        if entry is None:
            raise UnknownProviderError(provider_id)
        return entry[0]

    def create(self, config: ModelConfig) -> ProviderAdapter:
        """
        Build a validated adapter for `config.provider`.

        Raises:
            UnknownProviderError: provider id not registered
            ConfigInvalidError: validation failed, or the factory built an adapter for another provider
        """
        entry = self._entries.get(config.provider)
        if entry is None:
            raise UnknownProviderError(config.provider)

        _, factory = entry
        adapter = factory(config)

        if adapter.provider_id != config.provider:
            raise ConfigInvalidError(
                f"factory returned an adapter for '{adapter.provider_id}'",
                provider=config.provider,
            )

        logger.debug("Created %s adapter (model=%s)", config.provider, adapter.model)
        return adapter
