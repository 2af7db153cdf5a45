"""LLM backends behind one canonical completion contract."""

from __future__ import annotations

from .anthropic_provider import AnthropicProvider
from .base import ProviderClient, classify_status
from .factory import PROVIDER_TYPES, build_provider
from .local_provider import LocalProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "AnthropicProvider",
    "LocalProvider",
    "OpenAIProvider",
    "PROVIDER_TYPES",
    "ProviderClient",
    "build_provider",
    "classify_status",
]
