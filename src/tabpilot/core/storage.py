"""Settings storage.

Persistent key-value storage belongs to the host; the orchestrator only needs
the small async interface below. `MemoryStore` serves tests, the CLI and hosts
that keep settings in-process.
"""

from __future__ import annotations

import copy
from typing import Any, Protocol

CONFIG_KEY = "ai_config"


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any) -> bool: ...

    async def remove(self, key: str) -> bool: ...

    async def clear(self) -> bool: ...


class MemoryStore:
    """In-process KeyValueStore. Values are deep-copied on the way in and out."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, key: str) -> Any:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> bool:
        self._data[key] = copy.deepcopy(value)
        return True

    async def remove(self, key: str) -> bool:
        self._data.pop(key, None)
        return True

    async def clear(self) -> bool:
        self._data.clear()
        return True
