from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv
from pydantic import SecretStr

from .errors import ConfigError, UnknownProvider

# re-export for contract/tests
__all__ = [
    "AppConfig",
    "ConfigError",
    "ExecutorConfig",
    "PROVIDERS",
    "ProviderConfig",
    "SessionConfig",
    "load_config",
]


PROVIDERS = ("openai", "anthropic", "local")

DEFAULT_MODELS = {
    "openai": "gpt-4-turbo-preview",
    "anthropic": "claude-3-opus-20240229",
    "local": "llama3",
}

DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com",
    "local": "http://localhost:11434",
}

API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _expand_env_in_str(value: str, *, path: str) -> str:
    def repl(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in os.environ:
            raise ConfigError(f"environment variable {key!r} is missing", path=path)
        if os.environ[key] == "":
            raise ConfigError(f"environment variable {key!r} is empty", path=path)
        return os.environ[key]

    return _ENV_PATTERN.sub(repl, value)


def _expand_env(obj: Any, *, path: str) -> Any:
    if isinstance(obj, str):
        return _expand_env_in_str(obj, path=path)
    if isinstance(obj, list):
        return [_expand_env(v, path=f"{path}[{i}]") for i, v in enumerate(obj)]
    if isinstance(obj, dict):
        return {k: _expand_env(v, path=f"{path}.{k}" if path else str(k)) for k, v in obj.items()}
    return obj


def _section(raw: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError("must be a mapping", path=key)
    return value


def _pick(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if k in raw and raw[k] is not None:
            return raw[k]
    return default


@dataclass(frozen=True)
class ProviderConfig:
    """Connection settings for one LLM backend.

    Invariant: `api_key` is required unless `provider == "local"`.
    """

    provider: str
    model: str
    api_key: SecretStr | None = None
    base_url: str | None = None
    timeout_ms: int = 30_000
    max_retries: int = 3
    temperature: float = 0.7
    max_tokens: int = 4096

    def __post_init__(self) -> None:
        if self.provider not in PROVIDERS:
            raise UnknownProvider(self.provider)
        if self.provider != "local" and not self.has_api_key:
            raise ConfigError("API key is required for hosted providers", path="provider.api_key")
        if self.timeout_ms <= 0:
            raise ConfigError("must be > 0", path="provider.timeout_ms")
        if self.max_retries < 0:
            raise ConfigError("must be >= 0", path="provider.max_retries")

    @property
    def has_api_key(self) -> bool:
        return self.api_key is not None and bool(self.api_key.get_secret_value().strip())

    @property
    def resolved_base_url(self) -> str:
        return (self.base_url or DEFAULT_BASE_URLS[self.provider]).rstrip("/")

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "ProviderConfig":
        """Build from the stored settings shape (camelCase) or YAML (snake_case)."""

        provider = str(_pick(raw, "provider", default="openai"))
        if provider not in PROVIDERS:
            raise UnknownProvider(provider)

        api_key = _pick(raw, "api_key", "apiKey")
        if api_key in (None, ""):
            env_name = API_KEY_ENV.get(provider)
            api_key = os.getenv(env_name) if env_name else None

        try:
            return cls(
                provider=provider,
                model=str(_pick(raw, "model", default=DEFAULT_MODELS[provider])),
                api_key=SecretStr(str(api_key)) if api_key else None,
                base_url=_pick(raw, "base_url", "baseUrl"),
                timeout_ms=int(_pick(raw, "timeout_ms", "timeout", default=cls.timeout_ms)),
                max_retries=int(_pick(raw, "max_retries", "maxRetries", default=cls.max_retries)),
                temperature=float(_pick(raw, "temperature", default=cls.temperature)),
                max_tokens=int(_pick(raw, "max_tokens", "maxTokens", default=cls.max_tokens)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid value: {e}", path="provider") from e


@dataclass(frozen=True)
class SessionConfig:
    max_history: int = 20
    stale_after_s: float = 3600.0
    sweep_interval_s: float = 1800.0


@dataclass(frozen=True)
class ExecutorConfig:
    click_settle_ms: int = 500
    fill_settle_ms: int = 300
    highlight_class: str = "ai-assistant-highlight"
    max_interactive: int = 100
    body_text_limit: int = 3000
    max_matches: int = 10
    mutation_debounce_ms: int = 1000


@dataclass(frozen=True)
class AppConfig:
    provider: ProviderConfig | None = None
    sessions: SessionConfig = field(default_factory=SessionConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    log_level: str = "INFO"
    # Raw provider mapping as written in YAML, kept for seeding settings storage.
    provider_settings: dict[str, Any] = field(default_factory=dict)


def _load_provider(raw: dict[str, Any]) -> ProviderConfig | None:
    if not raw:
        return None

    provider = str(raw.get("provider", "openai"))
    if provider not in PROVIDERS:
        raise UnknownProvider(provider)

    # An absent key leaves the provider unconfigured; chat then reports it.
    try:
        return ProviderConfig.from_mapping(raw)
    except UnknownProvider:
        raise
    except ConfigError as e:
        if e.path == "provider.api_key":
            return None
        raise


def load_config(path: str | Path, *, load_dotenv_file: bool = True) -> AppConfig:
    """Load YAML config and expand ${ENV_VAR} placeholders strictly."""

    if load_dotenv_file:
        # Local dev: allow injecting secrets from .env (do not commit it).
        load_dotenv(override=False)

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError("config file does not exist", path=str(config_path))

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML parse failed: {e}", path=str(config_path)) from e

    if not isinstance(raw, dict):
        raise ConfigError("top level must be a YAML mapping", path=str(config_path))

    expanded = _expand_env(raw, path="")

    provider_raw = _section(expanded, "provider")
    provider = _load_provider(provider_raw)

    sessions_raw = _section(expanded, "sessions")
    sessions = SessionConfig(
        max_history=int(sessions_raw.get("max_history", SessionConfig.max_history)),
        stale_after_s=float(sessions_raw.get("stale_after_s", SessionConfig.stale_after_s)),
        sweep_interval_s=float(sessions_raw.get("sweep_interval_s", SessionConfig.sweep_interval_s)),
    )
    if sessions.max_history < 1:
        raise ConfigError("must be >= 1", path="sessions.max_history")

    executor_raw = _section(expanded, "executor")
    executor = ExecutorConfig(
        click_settle_ms=int(executor_raw.get("click_settle_ms", ExecutorConfig.click_settle_ms)),
        fill_settle_ms=int(executor_raw.get("fill_settle_ms", ExecutorConfig.fill_settle_ms)),
        highlight_class=str(executor_raw.get("highlight_class", ExecutorConfig.highlight_class)),
        max_interactive=int(executor_raw.get("max_interactive", ExecutorConfig.max_interactive)),
        body_text_limit=int(executor_raw.get("body_text_limit", ExecutorConfig.body_text_limit)),
        max_matches=int(executor_raw.get("max_matches", ExecutorConfig.max_matches)),
        mutation_debounce_ms=int(executor_raw.get("mutation_debounce_ms", ExecutorConfig.mutation_debounce_ms)),
    )

    logging_raw = _section(expanded, "logging")

    return AppConfig(
        provider=provider,
        sessions=sessions,
        executor=executor,
        log_level=str(logging_raw.get("level", AppConfig.log_level)),
        provider_settings=dict(provider_raw),
    )
