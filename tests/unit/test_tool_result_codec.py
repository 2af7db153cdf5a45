from __future__ import annotations

import json

from tabpilot.core.errors import ElementNotFound
from tabpilot.core.types import ToolResult
from tabpilot.tools.tool_messages import tool_message_from_result
from tabpilot.tools.tool_result_codec import dumps_payload, json_friendly, result_from_exception, result_from_rejection


def test_ok_result_flattens_data() -> None:
    r = ToolResult.ok("click_element", method="fuzzy", element={"tag": "button"})
    assert r.to_dict() == {"success": True, "tool": "click_element", "method": "fuzzy", "element": {"tag": "button"}}


def test_rejection_keeps_error_type_and_details() -> None:
    e = ElementNotFound('Could not find element matching: "Buy"', details={"attempted": {"description": "Buy"}})
    r = result_from_rejection("click_element", e)

    out = r.to_dict()
    assert out["success"] is False
    assert out["error_type"] == "element_not_found"
    assert out["attempted"] == {"description": "Buy"}
    assert ToolResult.from_dict(out) == r


def test_unexpected_exception_becomes_failed_result() -> None:
    r = result_from_exception("navigate", RuntimeError("boom"))
    assert r.success is False
    assert r.error == {"type": "RuntimeError", "message": "boom"}


def test_from_dict_defaults_for_sparse_failures() -> None:
    r = ToolResult.from_dict({"success": False}, tool="scroll_page")
    assert r.tool == "scroll_page"
    assert r.error == {"type": "tool_error", "message": "tool failed"}


def test_dumps_payload_is_compact_json() -> None:
    s = dumps_payload({"a": 1, "obj": object()})
    assert " " not in s.split('"obj"')[0]
    obj = json.loads(s)
    assert obj["a"] == 1
    assert obj["obj"].startswith("<object object")


def test_json_friendly_converts_tuples() -> None:
    assert json_friendly({"pair": ("a", 1)}) == {"pair": ["a", 1]}


def test_tool_message_carries_call_id() -> None:
    r = ToolResult.ok("find_text", count=2, query="news", matches=[])

    msg = tool_message_from_result("call_9", r)
    assert msg.role == "tool"
    assert msg.tool_call_id == "call_9"
    assert json.loads(msg.content) == {"success": True, "tool": "find_text", "count": 2, "query": "news", "matches": []}
    assert msg.to_dict()["tool_call_id"] == "call_9"
