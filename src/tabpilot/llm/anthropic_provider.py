from __future__ import annotations

import json
from typing import Any

from tabpilot.core.errors import ProviderResponseError
from tabpilot.core.types import CanonicalRequest, CanonicalResponse, Message, ToolCall, Usage
from tabpilot.tools.registry import to_anthropic_tools

from .base import ProviderClient

ANTHROPIC_VERSION = "2023-06-01"


def _tool_input(arguments_json: str) -> dict[str, Any]:
    try:
        value = json.loads(arguments_json or "{}")
    except json.JSONDecodeError:
        return {"_raw": arguments_json}
    return value if isinstance(value, dict) else {"value": value}


def to_anthropic_messages(messages: list[Message]) -> tuple[list[dict[str, Any]], list[str]]:
    """Translate history into Messages API turns.

    Returns (turns, system_notes). History `system` turns cannot appear inside
    `messages`, so they are returned separately and folded into `system`.
    Consecutive tool results share one user turn.
    """

    out: list[dict[str, Any]] = []
    notes: list[str] = []

    for m in messages:
        if m.role == "system":
            if m.content:
                notes.append(m.content)
            continue

        if m.role == "tool":
            block = {"type": "tool_result", "tool_use_id": m.tool_call_id or "", "content": m.content}
            prev = out[-1] if out else None
            if (
                prev is not None
                and prev["role"] == "user"
                and isinstance(prev["content"], list)
                and all(b.get("type") == "tool_result" for b in prev["content"])
            ):
                prev["content"].append(block)
            else:
                out.append({"role": "user", "content": [block]})
            continue

        if m.role == "assistant" and m.tool_calls:
            blocks: list[dict[str, Any]] = []
            if m.content:
                blocks.append({"type": "text", "text": m.content})
            for tc in m.tool_calls:
                blocks.append({"type": "tool_use", "id": tc.id, "name": tc.name, "input": _tool_input(tc.arguments_json)})
            out.append({"role": "assistant", "content": blocks})
            continue

        if not m.content:
            # The Messages API rejects empty text turns.
            continue
        out.append({"role": m.role, "content": m.content})

    return out, notes


def build_anthropic_body(request: CanonicalRequest, *, model: str) -> dict[str, Any]:
    turns, notes = to_anthropic_messages(request.messages)
    system = "\n\n".join([request.system, *notes]) if notes else request.system

    body: dict[str, Any] = {
        "model": model,
        "max_tokens": request.max_tokens,
        "temperature": request.temperature,
        "system": system,
        "messages": turns,
    }
    if request.tools:
        body["tools"] = to_anthropic_tools(request.tools)
        body["tool_choice"] = {"type": request.tool_choice}
    return body


def parse_anthropic_response(data: dict[str, Any]) -> CanonicalResponse:
    blocks = data.get("content")
    if not isinstance(blocks, list):
        raise ProviderResponseError("anthropic response has no content blocks")

    text_parts: list[str] = []
    tool_calls: list[ToolCall] = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        if block.get("type") == "text":
            text_parts.append(str(block.get("text") or ""))
        elif block.get("type") == "tool_use":
            tool_calls.append(
                ToolCall(
                    id=str(block.get("id", "")),
                    name=str(block.get("name", "")),
                    arguments_json=json.dumps(block.get("input") or {}, ensure_ascii=False),
                )
            )

    usage_raw = data.get("usage") or {}
    return CanonicalResponse(
        content="".join(text_parts),
        tool_calls=tool_calls or None,
        usage=Usage(
            input_tokens=int(usage_raw.get("input_tokens") or 0),
            output_tokens=int(usage_raw.get("output_tokens") or 0),
        ),
    )


class AnthropicProvider(ProviderClient):
    """Anthropic Messages API over httpx."""

    name = "anthropic"

    async def _send(self, request: CanonicalRequest, timeout_s: float) -> CanonicalResponse:
        api_key = self._cfg.api_key.get_secret_value() if self._cfg.api_key is not None else ""
        data = await self._post_json(
            f"{self._cfg.resolved_base_url}/v1/messages",
            body=build_anthropic_body(request, model=self._cfg.model),
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            timeout_s=timeout_s,
        )
        return parse_anthropic_response(data)
