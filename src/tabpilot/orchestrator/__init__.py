"""Per-tab conversation sessions and the chat/tool-call loop."""

from __future__ import annotations

from .orchestrator import NOT_CONFIGURED, SessionOrchestrator, mask_api_key
from .prompts import build_system_prompt
from .session import SessionStore

__all__ = ["NOT_CONFIGURED", "SessionOrchestrator", "SessionStore", "build_system_prompt", "mask_api_key"]
