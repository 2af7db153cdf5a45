from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from tabpilot.observability.logging import get_logger


class TrailingDebounce:
    """Coalesce bursts of triggers into one call, `delay_s` after the last trigger.

    Each `trigger()` restarts the timer. A callback that has already started is
    not interrupted by later triggers; they schedule a fresh call instead.
    Must be used from within a running event loop.
    """

    def __init__(self, delay_s: float, callback: Callable[[], Awaitable[None]]) -> None:
        self._delay_s = max(0.0, float(delay_s))
        self._callback = callback
        self._pending: asyncio.Task[None] | None = None
        self._running: set[asyncio.Task[None]] = set()
        self._log = get_logger("tabpilot.runtime.debounce")

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def trigger(self) -> None:
        self.cancel()
        task = asyncio.get_running_loop().create_task(self._wait_then_fire())
        self._pending = task
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    def cancel(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def _wait_then_fire(self) -> None:
        await asyncio.sleep(self._delay_s)
        # From here on the call is committed; detach it from cancel().
        if self._pending is asyncio.current_task():
            self._pending = None
        try:
            await self._callback()
        except Exception:  # noqa: BLE001
            self._log.exception("debounced_callback_failed")
