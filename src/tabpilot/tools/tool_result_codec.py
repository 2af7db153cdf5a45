from __future__ import annotations

import json
from typing import Any

from tabpilot.core.errors import ToolRejected
from tabpilot.core.types import ToolResult


def _is_json_primitive(obj: Any) -> bool:
    return obj is None or isinstance(obj, (str, int, float, bool))


def _is_json_friendly(obj: Any) -> bool:
    if _is_json_primitive(obj):
        return True
    if isinstance(obj, list):
        return all(_is_json_friendly(v) for v in obj)
    if isinstance(obj, dict):
        return all(isinstance(k, str) and _is_json_friendly(v) for k, v in obj.items())
    return False


def json_friendly(obj: Any) -> Any:
    """Coerce tool output into JSON-friendly data (unknown objects become repr)."""

    if _is_json_friendly(obj):
        return obj
    if isinstance(obj, (list, tuple)):
        return [json_friendly(v) for v in obj]
    if isinstance(obj, dict):
        return {str(k): json_friendly(v) for k, v in obj.items()}
    return repr(obj)


def result_from_rejection(tool: str, e: ToolRejected) -> ToolResult:
    return ToolResult(
        tool=tool,
        success=False,
        data=json_friendly(dict(e.details)),
        error={"type": e.error_type, "message": e.message},
    )


def result_from_exception(tool: str, e: BaseException) -> ToolResult:
    return ToolResult.failed(tool, error_type=type(e).__name__, message=str(e) or type(e).__name__)


def dumps_payload(payload: dict[str, Any]) -> str:
    """Serialize a result for a tool-role message.

    Content is always a compact JSON string, never a Python repr.
    """

    return json.dumps(json_friendly(payload), ensure_ascii=False, separators=(",", ":"))
