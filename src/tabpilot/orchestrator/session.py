from __future__ import annotations

import asyncio
import contextlib
import time
from typing import AsyncIterator, Callable

from tabpilot.core.types import Message, Session
from tabpilot.observability.logging import get_logger


class SessionStore:
    """Per-tab sessions, keyed by tab id.

    Lifecycle: created on first use (`get_or_create`), removed on tab close or
    explicit clear (`remove`), or by `sweep_stale` once idle past the
    staleness threshold. Each tab also owns a lock that serialises its turns;
    `exclusive` is the only way turns should take it.
    """

    def __init__(self, *, stale_after_s: float = 3600.0, clock: Callable[[], float] = time.time) -> None:
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._stale_after_s = stale_after_s
        self._clock = clock
        self._log = get_logger("tabpilot.sessions")

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, tab_id: object) -> bool:
        return tab_id in self._sessions

    def get(self, tab_id: str) -> Session | None:
        return self._sessions.get(tab_id)

    def get_or_create(self, tab_id: str) -> Session:
        session = self._sessions.get(tab_id)
        if session is None:
            session = Session(tab_id=tab_id, last_activity=self._clock())
            self._sessions[tab_id] = session
            self._log.info("session_created", tab_id=tab_id)
        return session

    def touch(self, session: Session) -> None:
        session.last_activity = self._clock()

    def history(self, tab_id: str) -> list[Message]:
        session = self._sessions.get(tab_id)
        return list(session.history) if session is not None else []

    def remove(self, tab_id: str) -> bool:
        lock = self._locks.get(tab_id)
        if lock is not None and not lock.locked():
            self._locks.pop(tab_id, None)
        # A held lock stays: turns queued behind it must keep queueing on it.
        return self._sessions.pop(tab_id, None) is not None

    def clear(self) -> None:
        self._sessions.clear()
        self._locks = {tab_id: lock for tab_id, lock in self._locks.items() if lock.locked()}

    def lock_for(self, tab_id: str) -> asyncio.Lock:
        lock = self._locks.get(tab_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tab_id] = lock
        return lock

    @contextlib.asynccontextmanager
    async def exclusive(self, tab_id: str) -> AsyncIterator[None]:
        """Hold the tab's turn lock.

        A lock dropped by `remove` while this call waited on it is no longer
        the tab's lock; in that case the current one is taken instead.
        """

        while True:
            lock = self.lock_for(tab_id)
            await lock.acquire()
            if self._locks.get(tab_id) is lock:
                break
            lock.release()
        try:
            yield
        finally:
            lock.release()

    def sweep_stale(self, now: float | None = None) -> list[str]:
        """Remove sessions idle for longer than the staleness threshold."""

        now = self._clock() if now is None else now
        stale = [tab_id for tab_id, s in self._sessions.items() if now - s.last_activity > self._stale_after_s]
        for tab_id in stale:
            lock = self._locks.get(tab_id)
            if lock is not None and lock.locked():
                # A turn is in flight; it refreshes last_activity when done.
                continue
            self.remove(tab_id)
            self._log.info("session_evicted", tab_id=tab_id, reason="stale")
        return [tab_id for tab_id in stale if tab_id not in self._sessions]
