"""Tool catalogue and tool-result encoding."""

from __future__ import annotations

from .registry import TOOL_DEFINITIONS, get_tool_definitions, parse_arguments, to_anthropic_tools, tool_names
from .tool_messages import tool_message_from_result
from .tool_result_codec import dumps_payload, result_from_exception, result_from_rejection

__all__ = [
    "TOOL_DEFINITIONS",
    "dumps_payload",
    "get_tool_definitions",
    "parse_arguments",
    "result_from_exception",
    "result_from_rejection",
    "to_anthropic_tools",
    "tool_message_from_result",
    "tool_names",
]
