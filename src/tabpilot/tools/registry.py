"""Static catalogue of the page automation tools offered to the model.

Definitions are stored in the OpenAI-compatible shape and passed verbatim:

{
  "type": "function",
  "function": {
    "name": "tool_name",
    "description": "...",
    "parameters": { ...JSON Schema... }
  }
}

Other backends reshape them at submission time (see `to_anthropic_tools`).
"""

from __future__ import annotations

import copy
import json
from typing import Any

from tabpilot.core.errors import ToolRejected
from tabpilot.core.types import ToolCall

_SELECTOR = {"type": "string", "description": "CSS selector if known (optional)"}


def _function(name: str, description: str, properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


TOOL_DEFINITIONS: tuple[dict[str, Any], ...] = (
    _function(
        "click_element",
        "Click on a button, link, or interactive element",
        {
            "description": {
                "type": "string",
                "description": 'Description of element to click (e.g., "Submit button", "Read more link")',
            },
            "selector": _SELECTOR,
        },
        ["description"],
    ),
    _function(
        "fill_form",
        "Fill a form input field with text",
        {
            "field_description": {
                "type": "string",
                "description": 'Description of the field (e.g., "Email input", "Search box")',
            },
            "value": {"type": "string", "description": "Text to enter"},
            "selector": _SELECTOR,
        },
        ["field_description", "value"],
    ),
    _function(
        "scroll_page",
        "Scroll the page up or down",
        {
            "direction": {
                "type": "string",
                "enum": ["up", "down", "top", "bottom"],
                "description": "Direction to scroll",
            },
            "amount": {"type": "number", "description": "Pixels to scroll (default: 500)"},
        },
        ["direction"],
    ),
    _function(
        "find_text",
        "Find and highlight specific text on the page",
        {
            "query": {"type": "string", "description": "Text to search for"},
            "case_sensitive": {"type": "boolean", "description": "Case sensitive search (default: false)"},
        },
        ["query"],
    ),
    _function(
        "extract_data",
        "Extract structured data from the page based on a schema",
        {
            "schema": {
                "type": "object",
                "description": "JSON schema describing what data to extract",
            },
        },
        ["schema"],
    ),
    _function(
        "navigate",
        "Navigate to a different URL",
        {"url": {"type": "string", "description": "URL to navigate to"}},
        ["url"],
    ),
)


def tool_names() -> list[str]:
    return [d["function"]["name"] for d in TOOL_DEFINITIONS]


def get_tool_definitions(names: list[str] | None = None) -> list[dict[str, Any]]:
    """Return deep copies of the tool definitions, optionally filtered by name."""

    if names is None:
        return [copy.deepcopy(d) for d in TOOL_DEFINITIONS]

    by_name = {d["function"]["name"]: d for d in TOOL_DEFINITIONS}
    out: list[dict[str, Any]] = []
    for name in names:
        if name not in by_name:
            raise KeyError(f"unknown tool spec: {name}")
        out.append(copy.deepcopy(by_name[name]))
    return out


def to_anthropic_tools(defs: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Reshape OpenAI-style definitions: `parameters` becomes `input_schema`."""

    return [
        {
            "name": d["function"]["name"],
            "description": d["function"].get("description", ""),
            "input_schema": d["function"].get("parameters", {"type": "object", "properties": {}}),
        }
        for d in defs
    ]


def parse_arguments(call: ToolCall) -> dict[str, Any]:
    """Decode a tool call's JSON argument string.

    Raises ToolRejected(invalid_arguments) for malformed or non-object JSON.
    """

    try:
        args = json.loads(call.arguments_json or "{}")
    except json.JSONDecodeError as e:
        raise ToolRejected(
            f"Malformed arguments for {call.name}: {e.msg}",
            error_type="invalid_arguments",
        ) from e
    if not isinstance(args, dict):
        raise ToolRejected(f"Arguments for {call.name} must be a JSON object", error_type="invalid_arguments")
    return args
