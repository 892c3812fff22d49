from pathlib import Path

import pytest
from pydantic import ValidationError

from infrastructure.config import (
    AnthropicReasoning,
    ChatSettings,
    GeminiReasoning,
    ModelConfig,
    ProviderSettings,
    XAIReasoning,
    api_key_env_var,
    load_settings,
)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_loads_providers_and_fills_keys_from_env(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
active_provider: OpenAI
temperature: 0.5
providers:
  openai:
    model: gpt-4o-mini
  anthropic:
    api_key: sk-ant-inline
    reasoning: true
""",
    )

    settings = load_settings(path, env={"OPENAI_API_KEY": "sk-from-env"})

    assert settings.active_provider == "openai"
    assert settings.temperature == 0.5
    assert settings.provider_settings().api_key == "sk-from-env"
    assert settings.provider_settings().model == "gpt-4o-mini"
    assert settings.provider_settings("anthropic").api_key == "sk-ant-inline"
    assert settings.provider_settings("anthropic").reasoning == AnthropicReasoning()


def test_active_provider_only_in_env_is_added(tmp_path: Path) -> None:
    path = _write(tmp_path, "active_provider: deepseek\n")

    settings = load_settings(path, env={"DEEPSEEK_API_KEY": "ds-key"})

    assert settings.providers["deepseek"].api_key == "ds-key"


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    settings = load_settings(_write(tmp_path, ""), env={})

    assert settings.active_provider == "anthropic"
    assert settings.stream_timeout_s == 30.0
    assert settings.enable_request_logging is True
    assert settings.request_log_include_response is False
    assert settings.provider_settings().api_key == ""


def test_filter_rules_support_templates(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
filter_rules:
  - template: remove-think-tags
  - template: remove-all-xml-tags
    enabled: true
  - id: shout
    pattern: "!+"
    replacement: "!"
""",
    )

    rules = load_settings(path, env={}).filter_rules

    assert [r.id for r in rules] == ["remove-think-tags", "remove-all-xml-tags", "shout"]
    assert rules[1].enabled is True
    assert rules[2].flags == "g"


def test_unknown_template_is_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path, "filter_rules:\n  - template: nope\n")

    with pytest.raises(ValueError, match="Unknown filter template"):
        load_settings(path, env={})


def test_reasoning_block_is_bound_to_provider(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
providers:
  gemini:
    reasoning: {budget_tokens: 0}
  xai:
    reasoning: {effort: high}
""",
    )

    settings = load_settings(path, env={})

    assert settings.providers["gemini"].reasoning == GeminiReasoning(budget_tokens=0)
    assert settings.providers["xai"].reasoning == XAIReasoning(effort="high")


def test_reasoning_for_unsupported_provider_is_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path, "providers:\n  openai:\n    reasoning: true\n")

    with pytest.raises(ValueError, match="does not support reasoning"):
        load_settings(path, env={})


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_settings(tmp_path / "absent.yaml", env={})


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        load_settings(_write(tmp_path, "- a\n- b\n"), env={})


def test_reasoning_must_match_provider_in_models() -> None:
    with pytest.raises(ValidationError):
        ModelConfig(provider="openai", model="gpt-4o", reasoning=AnthropicReasoning())

    with pytest.raises(ValidationError):
        ChatSettings(providers={"gemini": ProviderSettings(reasoning=AnthropicReasoning())})


def test_anthropic_budget_has_a_floor() -> None:
    with pytest.raises(ValidationError):
        AnthropicReasoning(budget_tokens=512)


def test_stream_timeout_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        ChatSettings(stream_timeout_s=0)


def test_api_key_env_var_name() -> None:
    assert api_key_env_var("moonshot") == "MOONSHOT_API_KEY"
