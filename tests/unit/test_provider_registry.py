import pytest

from domain.errors import ConfigInvalidError, UnknownProviderError
from infrastructure.config.models import ModelConfig
from infrastructure.providers import build_default_registry
from infrastructure.providers.factory import BUILTIN_PROVIDERS
from infrastructure.providers.mock import MOCK_DESCRIPTOR, MockAdapter
from infrastructure.providers.openai import OPENAI_DESCRIPTOR
from infrastructure.providers.registry import ProviderRegistry


def test_default_registry_lists_builtin_providers_in_order() -> None:
    registry = build_default_registry()

    assert registry.list_providers() == list(BUILTIN_PROVIDERS)
    assert not registry.is_registered("mock")


def test_mock_is_registered_only_on_request() -> None:
    registry = build_default_registry(include_mock=True)

    assert registry.list_providers()[-1] == "mock"
    assert registry.describe("mock") is MOCK_DESCRIPTOR


def test_every_registered_provider_describes_itself_without_credentials() -> None:
    registry = build_default_registry()

    for provider in registry.list_providers():
        descriptor = registry.describe(provider)
        assert descriptor.id == provider
        assert descriptor.default_model
        assert descriptor.models
        assert descriptor.default_base_url.startswith("https://")


def test_unknown_provider_is_rejected_for_describe_and_create() -> None:
    registry = build_default_registry()

    with pytest.raises(UnknownProviderError) as exc:
        registry.describe("unknown-vendor")
    assert exc.value.provider == "unknown-vendor"

    with pytest.raises(UnknownProviderError):
        registry.create(ModelConfig(provider="unknown-vendor", model="x", api_key="k"))


def test_create_with_valid_config_returns_adapter_for_that_provider() -> None:
    registry = build_default_registry()

    for provider in registry.list_providers():
        descriptor = registry.describe(provider)
        adapter = registry.create(
            ModelConfig(provider=provider, model=descriptor.default_model, api_key="test-key-1234567890")
        )
        assert adapter.provider_id == provider
        assert adapter.model == descriptor.default_model


def test_create_propagates_validation_failure() -> None:
    registry = build_default_registry()

    with pytest.raises(ConfigInvalidError) as exc:
        registry.create(ModelConfig(provider="openai", model="gpt-4o", api_key=""))

    assert exc.value.provider == "openai"
    assert exc.value.reason == "API key is required"


def test_register_replaces_existing_factory() -> None:
    registry = ProviderRegistry()
    registry.register(MOCK_DESCRIPTOR, lambda cfg: pytest.fail("replaced factory must not run"))
    registry.register(MOCK_DESCRIPTOR, MockAdapter.from_cfg)

    adapter = registry.create(ModelConfig(provider="mock", model="mock-model", api_key="k"))

    assert isinstance(adapter, MockAdapter)
    assert registry.list_providers() == ["mock"]


def test_factory_returning_another_provider_is_a_config_error() -> None:
    registry = ProviderRegistry()
    registry.register(OPENAI_DESCRIPTOR, MockAdapter.from_cfg)

    with pytest.raises(ConfigInvalidError):
        registry.create(ModelConfig(provider="openai", model="gpt-4o", api_key="sk-test"))
