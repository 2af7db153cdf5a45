"""Project core.

This package hosts the stable, non-domain-specific building blocks (config, errors,
contracts/types and settings storage).
"""

from __future__ import annotations

from .errors import ConfigError, TabpilotError

__all__ = [
    "ConfigError",
    "TabpilotError",
]
