from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol

from tabpilot.core.errors import ExecutorUnreachable
from tabpilot.observability.logging import get_logger

Handler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]
ExecutorFactory = Callable[[str], Awaitable[Handler | None]]


class MessageBus(Protocol):
    async def send(self, target_id: str, message: dict[str, Any]) -> dict[str, Any]:
        """Deliver `message` to the executor of `target_id` and await its response.

        Raises ExecutorUnreachable when nothing is attached to the target.
        """


class ExecutorInjector(Protocol):
    async def inject(self, target_id: str) -> None:
        """(Re)attach a page executor to `target_id`."""


class LocalBus:
    """In-process bus: tab ids map to executor message handlers.

    Executor -> orchestrator notifications go through `notify_orchestrator`,
    which forwards to the handler set with `attach_orchestrator`.
    """

    def __init__(self, *, executor_factory: ExecutorFactory | None = None) -> None:
        self._handlers: dict[str, Handler] = {}
        self._factory = executor_factory
        self._orchestrator: Handler | None = None
        self._log = get_logger("tabpilot.bus")

    def register(self, target_id: str, handler: Handler) -> None:
        self._handlers[target_id] = handler

    def unregister(self, target_id: str) -> None:
        self._handlers.pop(target_id, None)

    def attach_orchestrator(self, handler: Handler) -> None:
        self._orchestrator = handler

    def __contains__(self, target_id: object) -> bool:
        return target_id in self._handlers

    async def send(self, target_id: str, message: dict[str, Any]) -> dict[str, Any]:
        handler = self._handlers.get(target_id)
        if handler is None:
            raise ExecutorUnreachable(target_id)
        return await handler(message)

    async def inject(self, target_id: str) -> None:
        if self._factory is None:
            raise ExecutorUnreachable(target_id, "no executor factory configured")
        handler = await self._factory(target_id)
        if handler is None:
            raise ExecutorUnreachable(target_id, "executor injection failed")
        self.register(target_id, handler)
        self._log.info("executor_registered", tab_id=target_id)

    async def notify_orchestrator(self, target_id: str, message: dict[str, Any]) -> dict[str, Any] | None:
        if self._orchestrator is None:
            return None
        return await self._orchestrator({**message, "tabId": target_id})
