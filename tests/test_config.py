from __future__ import annotations

from pathlib import Path

import pytest

from tabpilot.core.config import ExecutorConfig, ProviderConfig, SessionConfig, load_config
from tabpilot.core.errors import ConfigError, UnknownProvider

REPO_ROOT = Path(__file__).resolve().parents[1]


def test_load_config_expands_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEST_ANTHROPIC_KEY", "sk-ant-test")

    p = tmp_path / "app.yaml"
    p.write_text(
        """
provider:
  provider: anthropic
  api_key: ${TEST_ANTHROPIC_KEY}
  max_retries: 5
sessions:
  max_history: 8
executor:
  click_settle_ms: 0
logging:
  level: DEBUG
""".lstrip(),
        encoding="utf-8",
    )

    cfg = load_config(p, load_dotenv_file=False)
    assert cfg.provider is not None
    assert cfg.provider.provider == "anthropic"
    assert cfg.provider.api_key is not None
    assert cfg.provider.api_key.get_secret_value() == "sk-ant-test"
    assert cfg.provider.model == "claude-3-opus-20240229"
    assert cfg.provider.resolved_base_url == "https://api.anthropic.com"
    assert cfg.provider.max_retries == 5
    assert cfg.sessions.max_history == 8
    assert cfg.sessions.stale_after_s == SessionConfig.stale_after_s
    assert cfg.executor.click_settle_ms == 0
    assert cfg.executor.highlight_class == ExecutorConfig.highlight_class
    assert cfg.log_level == "DEBUG"


def test_missing_api_key_leaves_provider_unconfigured(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    p = tmp_path / "app.yaml"
    p.write_text("provider:\n  provider: openai\n", encoding="utf-8")

    cfg = load_config(p, load_dotenv_file=False)
    assert cfg.provider is None
    assert cfg.provider_settings == {"provider": "openai"}


def test_api_key_falls_back_to_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")

    p = tmp_path / "app.yaml"
    p.write_text("provider:\n  provider: openai\n", encoding="utf-8")

    cfg = load_config(p, load_dotenv_file=False)
    assert cfg.provider is not None
    assert cfg.provider.has_api_key


def test_local_provider_needs_no_key(tmp_path: Path) -> None:
    p = tmp_path / "app.yaml"
    p.write_text("provider:\n  provider: local\n  model: mistral\n", encoding="utf-8")

    cfg = load_config(p, load_dotenv_file=False)
    assert cfg.provider is not None
    assert cfg.provider.api_key is None
    assert cfg.provider.resolved_base_url == "http://localhost:11434"


def test_unknown_provider_is_config_error(tmp_path: Path) -> None:
    p = tmp_path / "app.yaml"
    p.write_text("provider:\n  provider: bard\n", encoding="utf-8")

    with pytest.raises(UnknownProvider) as ei:
        load_config(p, load_dotenv_file=False)

    assert isinstance(ei.value, ConfigError)
    assert ei.value.path == "provider"


def test_provider_config_from_stored_settings_shape() -> None:
    cfg = ProviderConfig.from_mapping(
        {"provider": "openai", "apiKey": "sk-123", "baseUrl": "http://proxy.local/v1/", "timeout": 5000, "maxRetries": 1}
    )
    assert cfg.model == "gpt-4-turbo-preview"
    assert cfg.resolved_base_url == "http://proxy.local/v1"
    assert cfg.timeout_s == 5.0
    assert cfg.max_retries == 1


def test_hosted_provider_without_key_is_rejected() -> None:
    with pytest.raises(ConfigError) as ei:
        ProviderConfig(provider="anthropic", model="claude-3-opus-20240229")
    assert ei.value.path == "provider.api_key"


def test_repo_configs_app_yaml_loadable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-dummy")

    cfg = load_config(REPO_ROOT / "configs" / "app.yaml", load_dotenv_file=False)
    assert cfg.provider is not None
    assert cfg.provider.model
    assert cfg.sessions.max_history == 20
