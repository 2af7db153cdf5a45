"""Messages between the orchestrator and per-tab page executors.

The channel itself belongs to the host; `LocalBus` is the in-process one used
by the CLI and tests.
"""

from __future__ import annotations

from .local import ExecutorInjector, LocalBus, MessageBus

__all__ = ["ExecutorInjector", "LocalBus", "MessageBus"]
