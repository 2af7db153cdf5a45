from __future__ import annotations

from tabpilot.core.types import Message, ToolResult

from .tool_result_codec import dumps_payload


def tool_message_from_result(tool_call_id: str, r: ToolResult) -> Message:
    """Build the tool-role history turn for one result, tagged with its call id."""

    return Message(role="tool", content=dumps_payload(r.to_dict()), tool_call_id=tool_call_id)
