from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Any, AsyncIterator, Awaitable, Callable, cast

from langgraph.graph import END, START, StateGraph

from tabpilot.bus import ExecutorInjector, MessageBus
from tabpilot.core.config import ProviderConfig, SessionConfig
from tabpilot.core.errors import ConfigError, ExecutorUnreachable, ProviderError, ToolRejected
from tabpilot.core.storage import CONFIG_KEY, KeyValueStore, MemoryStore
from tabpilot.core.types import (
    CanonicalRequest,
    CanonicalResponse,
    Message,
    PageContext,
    Session,
    ToolCall,
    ToolResult,
)
from tabpilot.llm import ProviderClient, build_provider
from tabpilot.observability import add_error, bind_context, get_logger, set_state
from tabpilot.observability.ids import new_tool_call_id, new_trace_id
from tabpilot.tools import (
    get_tool_definitions,
    parse_arguments,
    result_from_exception,
    result_from_rejection,
    tool_message_from_result,
)

from .graph_state import TurnState
from .prompts import ANALYZE_SYSTEM, SUMMARIZE_SYSTEM, analyze_prompt, build_system_prompt, summarize_prompt
from .session import SessionStore

NOT_CONFIGURED = "AI not configured. Please set API key in settings."
EXECUTOR_UNREACHABLE = "Could not reach the page. Please reload the tab and try again."
MASK_PREFIX = "****"

_MODEL_ACTIONS = {"chat", "analyze_page", "summarize"}

ProviderFactory = Callable[[ProviderConfig], ProviderClient]
SleepFn = Callable[[float], Awaitable[None]]


class _NotConfigured(Exception):
    pass


def mask_api_key(key: str) -> str:
    return MASK_PREFIX + key[-4:] if len(key) > 8 else MASK_PREFIX


class SessionOrchestrator:
    """Routes bus requests and drives the per-tab chat/tool-call loop.

    Turn states: Idle -> AwaitingModel -> (no tool calls) -> Idle, or
    Idle -> AwaitingModel -> ExecutingTools -> AwaitingModel -> Idle.
    Turns for one tab are serialised; different tabs interleave freely.
    """

    def __init__(
        self,
        bus: MessageBus,
        *,
        store: SessionStore | None = None,
        config_store: KeyValueStore | None = None,
        provider: ProviderClient | None = None,
        session_config: SessionConfig | None = None,
        injector: ExecutorInjector | None = None,
        provider_factory: ProviderFactory = build_provider,
        clock: Callable[[], float] = time.time,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._bus = bus
        self._cfg = session_config or SessionConfig()
        self._store = store or SessionStore(stale_after_s=self._cfg.stale_after_s, clock=clock)
        self._config_store = config_store or MemoryStore()
        self._provider = provider
        self._injector = injector
        self._provider_factory = provider_factory
        self._clock = clock
        self._sleep = sleep

        self._initialized = provider is not None
        # Turns in flight per provider; a replaced provider closes when its last turn ends.
        self._leases: dict[ProviderClient, int] = {}
        self._retired: set[ProviderClient] = set()
        self._init_lock = asyncio.Lock()
        self._sweeper: asyncio.Task[None] | None = None
        self._turn_id = 0
        self._log = get_logger("tabpilot.orchestrator")

    @property
    def sessions(self) -> SessionStore:
        return self._store

    @property
    def provider(self) -> ProviderClient | None:
        return self._provider

    # Lifecycle

    async def start(self) -> None:
        await self._ensure_initialized()
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        retired, self._retired = list(self._retired), set()
        for old in retired:
            await old.aclose()
        if self._provider is not None:
            await self._provider.aclose()

    async def _sweep_loop(self) -> None:
        while True:
            await self._sleep(self._cfg.sweep_interval_s)
            evicted = self._store.sweep_stale(self._clock())
            if evicted:
                self._log.info("sessions_swept", evicted=len(evicted), remaining=len(self._store))

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            raw = await self._config_store.get(CONFIG_KEY)
            if isinstance(raw, dict) and self._provider is None:
                try:
                    self._provider = self._provider_factory(ProviderConfig.from_mapping(raw))
                except ConfigError as e:
                    self._log.warning("stored_config_invalid", error=str(e), path=e.path)
            self._initialized = True

    # Bus entry point

    async def handle_message(self, request: dict[str, Any]) -> dict[str, Any]:
        """Service one bus request. Every failure becomes `{"error": ...}`."""

        action = request.get("action")
        try:
            await self._ensure_initialized()
            if action in _MODEL_ACTIONS and self._provider is None:
                raise _NotConfigured()
            return await self._dispatch(str(action), request)
        except _NotConfigured:
            return {"error": NOT_CONFIGURED}
        except ProviderError as e:
            self._log.warning("action_failed", action=action, error_type=type(e).__name__, error=str(e))
            return {"error": e.user_message}
        except ExecutorUnreachable as e:
            self._log.warning("action_failed", action=action, error_type="ExecutorUnreachable", error=str(e))
            return {"error": EXECUTOR_UNREACHABLE}
        except ConfigError as e:
            self._log.warning("action_failed", action=action, error_type="ConfigError", error=str(e))
            return {"error": str(e)}
        except Exception as e:  # noqa: BLE001
            self._log.exception("action_failed", action=action, error_type=type(e).__name__)
            return {"error": str(e) or type(e).__name__}

    async def _dispatch(self, action: str, request: dict[str, Any]) -> dict[str, Any]:
        if action == "get_config":
            return await self.get_config()
        if action == "set_config":
            return await self.set_config(request.get("config"))

        tab_id = request.get("tabId")
        if tab_id is None or tab_id == "":
            return {"error": f"{action}: missing tabId"}
        tab_id = str(tab_id)

        if action == "chat":
            return await self.chat(tab_id, request.get("message"), request.get("pageContext"))
        if action == "analyze_page":
            return await self.analyze_page(tab_id)
        if action == "summarize":
            return await self.summarize(tab_id, request.get("pageContext"))
        if action == "extract_data":
            return await self._send_to_executor(
                tab_id,
                {"action": "execute_tool", "tool": "extract_data", "params": {"schema": request.get("schema")}},
            )
        if action == "get_page_structure":
            return await self._send_to_executor(tab_id, {"action": "get_structure"})
        if action == "execute_action":
            return await self._send_to_executor(tab_id, {"action": "execute_action", "data": request.get("actionData")})
        if action == "clear_history":
            self._store.remove(tab_id)
            return {"success": True}
        if action == "get_history":
            return {"history": [m.to_dict() for m in self._store.history(tab_id)]}
        if action == "tab_closed":
            if self._store.remove(tab_id):
                self._log.info("session_evicted", tab_id=tab_id, reason="tab_closed")
            return {"success": True}
        if action == "navigated":
            return await self.on_navigated(tab_id, request.get("url"))
        if action == "dom_changed":
            return self.on_dom_changed(tab_id, request.get("url"), request.get("timestamp"))

        return {"error": f"Unknown action: {action}"}

    # Settings

    async def get_config(self) -> dict[str, Any]:
        stored = await self._config_store.get(CONFIG_KEY) or {}
        out = {k: v for k, v in stored.items() if k != "apiKey"}
        key = stored.get("apiKey")
        out["hasApiKey"] = bool(key)
        if key:
            out["apiKey"] = mask_api_key(str(key))
        return out

    async def set_config(self, config: Any) -> dict[str, Any]:
        if not isinstance(config, dict):
            raise ConfigError("config must be an object", path="config")

        stored = await self._config_store.get(CONFIG_KEY) or {}
        merged = {k: v for k, v in config.items() if k != "hasApiKey"}
        incoming_key = merged.get("apiKey")
        if not incoming_key or str(incoming_key).startswith(MASK_PREFIX):
            # Masked or absent: keep the key already on file.
            if stored.get("apiKey"):
                merged["apiKey"] = stored["apiKey"]
            else:
                merged.pop("apiKey", None)

        provider = self._provider_factory(ProviderConfig.from_mapping(merged))
        await self._config_store.set(CONFIG_KEY, merged)

        old, self._provider = self._provider, provider
        self._initialized = True
        if old is not None and old is not provider:
            await self._retire(old)

        self._log.info("config_updated", provider=provider.config.provider, model=provider.config.model)
        return {"success": True}

    # Host lifecycle events

    async def on_navigated(self, tab_id: str, url: Any) -> dict[str, Any]:
        if tab_id not in self._store:
            return {"success": True}
        async with self._store.exclusive(tab_id):
            session = self._store.get(tab_id)
            if session is None:
                return {"success": True}
            session.page_context = PageContext(url=str(url or ""), timestamp=self._clock())
            session.history.append(Message(role="system", content=f"User navigated to: {url}"))
            self._trim(session)
        return {"success": True}

    def on_dom_changed(self, tab_id: str, url: Any, timestamp: Any) -> dict[str, Any]:
        session = self._store.get(tab_id)
        if session is not None and session.page_context is not None:
            if isinstance(url, str) and url:
                session.page_context.url = url
            if isinstance(timestamp, (int, float)):
                session.page_context.timestamp = float(timestamp)
        self._log.debug("dom_changed", tab_id=tab_id)
        return {"success": True}

    # Model-backed actions

    async def chat(self, tab_id: str, message: Any, page_context: Any = None) -> dict[str, Any]:
        if not isinstance(message, str) or not message.strip():
            return {"error": "Message is empty."}

        async with self._store.exclusive(tab_id), self._lease(self._require_provider()) as provider:
            session = self._store.get_or_create(tab_id)
            self._store.touch(session)
            if page_context is not None:
                session.page_context = PageContext.from_dict(page_context)

            self._turn_id += 1
            bind_context(trace_id=new_trace_id(), tab_id=tab_id, turn_id=self._turn_id)

            before = len(session.history)
            session.history.append(Message(role="user", content=message))

            t0 = time.perf_counter()
            graph = self._build_graph(provider)
            try:
                out = cast(
                    TurnState,
                    await graph.ainvoke(
                        {
                            "tab_id": tab_id,
                            "system": build_system_prompt(session.page_context),
                            "history": list(session.history),
                            "tool_calls": [],
                            "tool_results": [],
                            "tool_messages": [],
                        }
                    ),
                )
            except BaseException:
                # A failed turn leaves no partial exchange behind.
                del session.history[before:]
                raise
            finally:
                set_state("Idle")

            response = out["response"]
            calls = list(out.get("tool_calls", []))
            results = list(out.get("tool_results", []))

            if calls:
                session.history.append(Message(role="assistant", content=response.content, tool_calls=calls))
                session.history.extend(out.get("tool_messages", []))
                answer = str(out.get("answer", ""))
            else:
                answer = response.content
            session.history.append(Message(role="assistant", content=answer))

            self._trim(session)
            self._store.touch(session)

            self._log.info(
                "turn_done",
                latency_ms=round((time.perf_counter() - t0) * 1000, 2),
                tool_calls=len(calls),
                failed_tools=sum(1 for r in results if not r.success),
                history_len=len(session.history),
            )

        if not calls:
            return {"response": answer}
        return {
            "response": answer,
            "actions": [r.to_dict() for r in results],
            "usedTools": [c.name for c in calls],
        }

    async def analyze_page(self, tab_id: str) -> dict[str, Any]:
        async with self._lease(self._require_provider()) as provider:
            structure = await self._send_to_executor(tab_id, {"action": "get_structure"})
            response = await provider.complete(
                CanonicalRequest(
                    system=ANALYZE_SYSTEM,
                    messages=[Message(role="user", content=analyze_prompt(structure))],
                    temperature=provider.config.temperature,
                    max_tokens=provider.config.max_tokens,
                )
            )
        return response.to_dict()

    async def summarize(self, tab_id: str, page_context: Any = None) -> dict[str, Any]:
        async with self._lease(self._require_provider()) as provider:
            structure = await self._send_to_executor(tab_id, {"action": "get_structure"})

            context = PageContext.from_dict(page_context)
            body = str((structure.get("textContent") or {}).get("body") or "")
            if not body.strip():
                return {"error": "The page has no readable text to summarize."}

            response = await provider.complete(
                CanonicalRequest(
                    system=SUMMARIZE_SYSTEM,
                    messages=[
                        Message(
                            role="user",
                            content=summarize_prompt(
                                structure.get("title") or context.title,
                                structure.get("url") or context.url,
                                body,
                            ),
                        )
                    ],
                    temperature=provider.config.temperature,
                    max_tokens=provider.config.max_tokens,
                )
            )
        return {"summary": response.content}

    # Tool dispatch

    async def execute_tool_calls(self, tab_id: str, calls: list[ToolCall]) -> list[ToolResult]:
        """Run calls strictly in order; one result per call, failures included."""

        results: list[ToolResult] = []
        for call in calls:
            result = await self._execute_one(tab_id, call)
            if result.success:
                self._log.info("tool_ok", tool=call.name, tool_call_id=call.id)
            else:
                error_type = (result.error or {}).get("type")
                add_error(f"{call.name}: {error_type}")
                self._log.info("tool_failed", tool=call.name, tool_call_id=call.id, error_type=error_type)
            results.append(result)
        return results

    async def _execute_one(self, tab_id: str, call: ToolCall) -> ToolResult:
        try:
            params = parse_arguments(call)
        except ToolRejected as e:
            return result_from_rejection(call.name, e)

        try:
            raw = await self._send_to_executor(
                tab_id,
                {"action": "execute_tool", "tool": call.name, "params": params, "toolCallId": call.id},
            )
        except Exception as e:  # noqa: BLE001
            return result_from_exception(call.name, e)

        if not isinstance(raw, dict):
            return ToolResult.failed(call.name, error_type="invalid_response", message="executor returned no result")
        return ToolResult.from_dict(raw, tool=call.name)

    async def _send_to_executor(self, tab_id: str, message: dict[str, Any]) -> dict[str, Any]:
        try:
            return await self._bus.send(tab_id, message)
        except ExecutorUnreachable:
            if self._injector is None:
                raise
        # Exactly one injection-and-retry cycle.
        await self._injector.inject(tab_id)
        self._log.info("executor_injected", tab_id=tab_id)
        return await self._bus.send(tab_id, message)

    # Internals

    def _require_provider(self) -> ProviderClient:
        if self._provider is None:
            raise _NotConfigured()
        return self._provider

    @contextlib.asynccontextmanager
    async def _lease(self, provider: ProviderClient) -> AsyncIterator[ProviderClient]:
        self._leases[provider] = self._leases.get(provider, 0) + 1
        try:
            yield provider
        finally:
            left = self._leases[provider] - 1
            if left:
                self._leases[provider] = left
            else:
                del self._leases[provider]
                if provider in self._retired:
                    self._retired.discard(provider)
                    await provider.aclose()

    async def _retire(self, provider: ProviderClient) -> None:
        if provider in self._leases:
            self._retired.add(provider)
            self._log.info("provider_retired", in_flight=self._leases[provider])
            return
        await provider.aclose()

    def _trim(self, session: Session) -> None:
        limit = max(1, int(self._cfg.max_history))
        if len(session.history) <= limit:
            return
        dropped = len(session.history) - limit
        del session.history[:dropped]
        # Tool results whose assistant turn fell out of the window are unusable.
        while session.history and session.history[0].role == "tool":
            del session.history[0]
            dropped += 1
        self._log.info("history_trimmed", tab_id=session.tab_id, dropped=dropped, history_len=len(session.history))

    def _build_graph(self, provider: ProviderClient):
        tools = get_tool_definitions()

        def _request(state: TurnState, messages: list[Message], *, tool_choice: str) -> CanonicalRequest:
            return CanonicalRequest(
                system=state["system"],
                messages=messages,
                tools=tools,
                tool_choice=tool_choice,  # type: ignore[arg-type]
                temperature=provider.config.temperature,
                max_tokens=provider.config.max_tokens,
            )

        async def call_model_node(state: TurnState) -> dict[str, Any]:
            set_state("AwaitingModel")
            response = await provider.complete(_request(state, list(state["history"]), tool_choice="auto"))
            calls = [
                c if c.id else ToolCall(id=new_tool_call_id(), name=c.name, arguments_json=c.arguments_json)
                for c in response.tool_calls or []
            ]
            return {"response": response, "tool_calls": calls}

        def route(state: TurnState) -> str:
            return "execute_tools" if state.get("tool_calls") else END

        async def execute_tools_node(state: TurnState) -> dict[str, Any]:
            set_state("ExecutingTools")
            calls = list(state.get("tool_calls", []))
            results = await self.execute_tool_calls(state["tab_id"], calls)
            messages = [tool_message_from_result(c.id, r) for c, r in zip(calls, results)]
            return {"tool_results": results, "tool_messages": messages}

        async def final_answer_node(state: TurnState) -> dict[str, Any]:
            set_state("AwaitingModel")
            response: CanonicalResponse = state["response"]
            messages = [
                *state["history"],
                Message(role="assistant", content=response.content, tool_calls=list(state.get("tool_calls", []))),
                *state.get("tool_messages", []),
            ]
            # Tools stay declared so tool turns in history remain valid; none may be called.
            final = await provider.complete(_request(state, messages, tool_choice="none"))
            return {"answer": final.content}

        builder = StateGraph(TurnState)
        builder.add_node("call_model", call_model_node)
        builder.add_node("execute_tools", execute_tools_node)
        builder.add_node("final_answer", final_answer_node)

        builder.add_edge(START, "call_model")
        builder.add_conditional_edges("call_model", route, ["execute_tools", END])
        builder.add_edge("execute_tools", "final_answer")
        builder.add_edge("final_answer", END)

        return builder.compile()
