from __future__ import annotations

import asyncio
import re
import time
from typing import Any, Awaitable, Callable
from urllib.parse import urlparse

from tabpilot.core.config import ExecutorConfig
from tabpilot.core.errors import ActionExecutionFailed, ToolRejected
from tabpilot.core.types import ToolResult
from tabpilot.observability.logging import get_logger
from tabpilot.runtime.debounce import TrailingDebounce
from tabpilot.tools.tool_result_codec import result_from_exception, result_from_rejection

from .document import DocumentHandle
from .extraction import extract_fields
from .resolver import ElementResolver, describe_element
from .structure import build_structure

Notify = Callable[[dict[str, Any]], Awaitable[Any]]
SleepFn = Callable[[float], Awaitable[None]]

_BLOCKED_SCHEMES = {"javascript", "data", "vbscript"}
_SCROLL_DIRECTIONS = ("up", "down", "top", "bottom")


def _require_str(params: dict[str, Any], key: str) -> str:
    value = params.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ToolRejected(f"Missing required parameter: {key}", error_type="invalid_arguments")
    return value


def _optional_str(params: dict[str, Any], key: str) -> str | None:
    value = params.get(key)
    return value if isinstance(value, str) and value.strip() else None


class PageExecutor:
    """Executes automation tools against one loaded document.

    One instance per document; it is recreated on navigation. Every tool call
    returns a ToolResult: resolution and action failures are reported, never
    raised.
    """

    def __init__(
        self,
        document: DocumentHandle,
        *,
        config: ExecutorConfig | None = None,
        notify: Notify | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._doc = document
        self._cfg = config or ExecutorConfig()
        self._notify = notify
        self._sleep = sleep
        self._resolver = ElementResolver(document)
        self._log = get_logger("tabpilot.page.executor")
        self._mutations = TrailingDebounce(self._cfg.mutation_debounce_ms / 1000.0, self._report_dom_change)
        self._tools: dict[str, Callable[[dict[str, Any]], Awaitable[ToolResult]]] = {
            "click_element": self._click_element,
            "fill_form": self._fill_form,
            "scroll_page": self._scroll_page,
            "find_text": self._find_text,
            "extract_data": self._extract_data,
            "navigate": self._navigate,
        }

    @property
    def document(self) -> DocumentHandle:
        return self._doc

    async def get_structure(self) -> dict[str, Any]:
        return await build_structure(self._doc, self._cfg)

    async def execute_tool(self, name: str, params: dict[str, Any] | None) -> ToolResult:
        handler = self._tools.get(name)
        if handler is None:
            return ToolResult.failed(name, error_type="unknown_tool", message=f"Unknown tool: {name}")
        if not isinstance(params, dict):
            return ToolResult.failed(name, error_type="invalid_arguments", message="Tool params must be an object")

        try:
            result = await handler(params)
        except ToolRejected as e:
            self._log.info("tool_failed", tool=name, error_type=e.error_type)
            return result_from_rejection(name, e)
        except Exception as e:  # noqa: BLE001
            self._log.exception("tool_failed", tool=name, error_type=type(e).__name__)
            return result_from_exception(name, e)

        self._log.info("tool_ok", tool=name)
        return result

    async def handle_message(self, request: dict[str, Any]) -> dict[str, Any]:
        """Service one executor bus message. Never raises."""

        action = request.get("action")
        try:
            if action == "get_structure":
                return await self.get_structure()
            if action == "execute_tool":
                result = await self.execute_tool(str(request.get("tool") or ""), request.get("params") or {})
                return result.to_dict()
            if action == "execute_action":
                data = request.get("data") or {}
                result = await self.execute_tool(str(data.get("tool") or ""), data.get("params") or {})
                return result.to_dict()
            if action == "highlight":
                return await self._highlight(str(request.get("selector") or ""), scroll=False)
            if action == "scroll_to":
                return await self._highlight(str(request.get("selector") or ""), scroll=True)
            if action == "get_selection":
                return {"text": await self._doc.selection_text()}
        except Exception as e:  # noqa: BLE001
            self._log.exception("executor_action_failed", action=action)
            return {"success": False, "error": str(e) or type(e).__name__}

        return {"success": False, "error": f"Unknown action: {action}"}

    def on_dom_mutation(self) -> None:
        """Host hook for document mutations; reports a coalesced `dom_changed`."""

        if self._notify is not None:
            self._mutations.trigger()

    def close(self) -> None:
        self._mutations.cancel()

    async def _report_dom_change(self) -> None:
        if self._notify is None:
            return
        await self._notify({"action": "dom_changed", "url": await self._doc.url(), "timestamp": time.time()})

    async def _settle(self, ms: int) -> None:
        if ms > 0:
            await self._sleep(ms / 1000.0)

    async def _click_element(self, params: dict[str, Any]) -> ToolResult:
        description = _require_str(params, "description")
        resolution = await self._resolver.resolve_clickable(description, _optional_str(params, "selector"))
        el = resolution.element

        await el.scroll_into_view()
        await el.highlight()
        await self._settle(self._cfg.click_settle_ms)

        described = await describe_element(el)
        try:
            await el.click()
        except Exception as e:  # noqa: BLE001
            raise ActionExecutionFailed(f"Click failed: {e}", details={"element": described}) from e

        return ToolResult.ok("click_element", method=resolution.method, element=described)

    async def _fill_form(self, params: dict[str, Any]) -> ToolResult:
        description = _require_str(params, "field_description")
        value = params.get("value")
        if value is None:
            raise ToolRejected("Missing required parameter: value", error_type="invalid_arguments")
        value = str(value)

        resolution = await self._resolver.resolve_field(description, _optional_str(params, "selector"))
        el = resolution.element

        await el.focus()
        await el.scroll_into_view()
        await el.highlight()
        await self._settle(self._cfg.fill_settle_ms)

        try:
            if el.tag == "select":
                needle = value.lower()
                match = next(
                    (opt_value for text, opt_value in await el.options() if needle in text.lower() or needle in opt_value.lower()),
                    None,
                )
                if match is None:
                    raise ActionExecutionFailed(f'Option "{value}" not found in dropdown')
                await el.set_value(match)
            else:
                await el.set_value(value)

            for event_type in ("input", "change", "keyup"):
                await el.dispatch_event(event_type)
        except ActionExecutionFailed:
            raise
        except Exception as e:  # noqa: BLE001
            raise ActionExecutionFailed(f"Fill failed: {e}", details={"element": await describe_element(el)}) from e

        current = await el.value() or ""
        return ToolResult.ok(
            "fill_form",
            method=resolution.method,
            field={
                "tag": el.tag,
                "name": await el.attribute("name"),
                "type": await el.attribute("type"),
                # Truncated: form values can be sensitive.
                "value": current[:50],
            },
        )

    async def _scroll_page(self, params: dict[str, Any]) -> ToolResult:
        direction = params.get("direction")
        if direction not in _SCROLL_DIRECTIONS:
            raise ActionExecutionFailed(f"Unknown direction: {direction}")

        amount = params.get("amount")
        if not isinstance(amount, (int, float)) or isinstance(amount, bool) or amount <= 0:
            amount = 500

        if direction == "up":
            await self._doc.scroll_by(-amount)
        elif direction == "down":
            await self._doc.scroll_by(amount)
        elif direction == "top":
            await self._doc.scroll_to(0)
        else:
            _, max_scroll = await self._doc.scroll_metrics()
            await self._doc.scroll_to(max_scroll)

        position, max_scroll = await self._doc.scroll_metrics()
        return ToolResult.ok("scroll_page", direction=direction, newPosition=position, maxScroll=max_scroll)

    async def _find_text(self, params: dict[str, Any]) -> ToolResult:
        css_class = self._cfg.highlight_class
        # Marks from any previous search go first, even if this query is rejected.
        await self._doc.clear_marks(css_class)

        query = params.get("query")
        if not isinstance(query, str) or len(query) < 2:
            raise ToolRejected("Query too short", error_type="invalid_arguments")

        flags = 0 if params.get("case_sensitive") else re.IGNORECASE
        pattern = re.compile(re.escape(query), flags)

        # One hit per highlighted element; count is the number of elements.
        hits = await self._doc.mark_text(pattern, css_class)

        matches = [
            {"text": hit["text"][:100], "element": await describe_element(hit["element"])}
            for hit in hits[: self._cfg.max_matches]
        ]

        first = await self._doc.query(f"mark.{css_class}")
        if first is not None:
            await first.scroll_into_view()

        return ToolResult.ok("find_text", count=len(hits), query=query, matches=matches)

    async def _extract_data(self, params: dict[str, Any]) -> ToolResult:
        schema = params.get("schema")
        if not isinstance(schema, dict) or not schema:
            raise ToolRejected("schema must be a non-empty object", error_type="invalid_arguments")
        return ToolResult.ok("extract_data", data=await extract_fields(self._doc, schema))

    async def _navigate(self, params: dict[str, Any]) -> ToolResult:
        url = _require_str(params, "url").strip()
        if urlparse(url).scheme.lower() in _BLOCKED_SCHEMES:
            raise ToolRejected(f"Refusing to navigate to a {urlparse(url).scheme}: URL", error_type="invalid_arguments")

        try:
            await self._doc.navigate(url)
        except Exception as e:  # noqa: BLE001
            raise ActionExecutionFailed(f"Navigation failed: {e}") from e

        # Optimistic: the navigation is started, not awaited.
        return ToolResult.ok("navigate", navigating=True, url=url)

    async def _highlight(self, selector: str, *, scroll: bool) -> dict[str, Any]:
        el = await self._doc.query(selector) if selector else None
        if el is None:
            return {"success": False, "error": "Element not found"}
        if scroll:
            await el.scroll_into_view()
        await el.highlight()
        return {"success": True}
