from __future__ import annotations

from typing import Any

from tabpilot.core.config import ProviderConfig
from tabpilot.core.errors import UnknownProvider

from .anthropic_provider import AnthropicProvider
from .base import ProviderClient
from .local_provider import LocalProvider
from .openai_provider import OpenAIProvider

PROVIDER_TYPES: dict[str, type[ProviderClient]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "local": LocalProvider,
}


def build_provider(cfg: ProviderConfig, **kwargs: Any) -> ProviderClient:
    """Select the backend implementation once, at configuration time."""

    try:
        provider_type = PROVIDER_TYPES[cfg.provider]
    except KeyError:
        raise UnknownProvider(cfg.provider) from None
    return provider_type(cfg, **kwargs)
