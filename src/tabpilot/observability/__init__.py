from __future__ import annotations

from .context import add_error, bind_context, get_state, set_state
from .logging import configure_logging, get_logger

__all__ = ["add_error", "bind_context", "configure_logging", "get_logger", "get_state", "set_state"]
