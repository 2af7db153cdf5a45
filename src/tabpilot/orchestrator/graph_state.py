from __future__ import annotations

from typing_extensions import TypedDict

from tabpilot.core.types import CanonicalResponse, Message, ToolCall, ToolResult


class TurnState(TypedDict, total=False):
    # Input
    tab_id: str
    system: str
    history: list[Message]

    # call_model outputs
    response: CanonicalResponse
    tool_calls: list[ToolCall]

    # execute_tools outputs (index-aligned with tool_calls)
    tool_results: list[ToolResult]
    tool_messages: list[Message]

    # Final output
    answer: str
