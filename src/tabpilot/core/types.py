from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["user", "assistant", "tool", "system"]
ToolChoice = Literal["auto", "none"]


@dataclass(frozen=True, slots=True)
class ToolCall:
    """Abstract tool call (stable structure across providers).

    `id` correlates the call with the tool-role message carrying its result.
    """

    id: str
    name: str
    arguments_json: str = "{}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments_json},
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ToolCall":
        fn = raw.get("function") or {}
        args = fn.get("arguments")
        if not isinstance(args, str):
            args = json.dumps(args or {}, ensure_ascii=False)
        return cls(id=str(raw.get("id", "")), name=str(fn.get("name", "")), arguments_json=args)


@dataclass(slots=True)
class Message:
    role: Role
    content: str = ""
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            out["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            out["tool_call_id"] = self.tool_call_id
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Message":
        calls = raw.get("tool_calls")
        return cls(
            role=raw["role"],
            content=str(raw.get("content") or ""),
            tool_calls=[ToolCall.from_dict(c) for c in calls] if calls else None,
            tool_call_id=raw.get("tool_call_id"),
        )


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Outcome of one tool call.

    Always produced: a failed resolution or action yields success=False, never
    an aborted batch. `data` holds the tool-specific payload (method, element,
    count, ...); `error` is the normalized {type, message} pair on failure.
    """

    tool: str
    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: dict[str, str] | None = None

    @classmethod
    def ok(cls, tool: str, **data: Any) -> "ToolResult":
        return cls(tool=tool, success=True, data=data)

    @classmethod
    def failed(cls, tool: str, *, error_type: str, message: str, **data: Any) -> "ToolResult":
        return cls(tool=tool, success=False, data=data, error={"type": error_type, "message": message})

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success, "tool": self.tool}
        out.update(self.data)
        if self.error is not None:
            out["error"] = self.error["message"]
            out["error_type"] = self.error["type"]
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any], *, tool: str | None = None) -> "ToolResult":
        data = {k: v for k, v in raw.items() if k not in {"success", "tool", "error", "error_type"}}
        name = str(raw.get("tool") or tool or "")
        if raw.get("success"):
            return cls(tool=name, success=True, data=data)
        return cls(
            tool=name,
            success=False,
            data=data,
            error={
                "type": str(raw.get("error_type") or "tool_error"),
                "message": str(raw.get("error") or "tool failed"),
            },
        )


@dataclass(frozen=True, slots=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True, slots=True)
class CanonicalRequest:
    """Backend-neutral completion request."""

    system: str
    messages: list[Message]
    tools: list[dict[str, Any]] | None = None
    tool_choice: ToolChoice = "auto"
    temperature: float = 0.7
    max_tokens: int = 4096


@dataclass(frozen=True, slots=True)
class CanonicalResponse:
    content: str
    tool_calls: list[ToolCall] | None = None
    usage: Usage | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "toolCalls": [tc.to_dict() for tc in self.tool_calls] if self.tool_calls else None,
        }


@dataclass(slots=True)
class PageContext:
    url: str | None = None
    title: str | None = None
    timestamp: float | None = None
    structure: dict[str, Any] | None = None
    headings: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "PageContext":
        if not isinstance(raw, dict):
            return cls()
        headings: list[str] = []
        for h in raw.get("headings") or []:
            if isinstance(h, dict):
                h = h.get("text")
            if isinstance(h, str) and h.strip():
                headings.append(h.strip())
        structure = raw.get("structure")
        ts = raw.get("timestamp")
        return cls(
            url=raw.get("url"),
            title=raw.get("title"),
            timestamp=float(ts) if isinstance(ts, (int, float)) else None,
            structure=structure if isinstance(structure, dict) else None,
            headings=headings,
        )


@dataclass(slots=True)
class Session:
    """Per-tab conversational state. Mutated only by the orchestrator."""

    tab_id: str
    history: list[Message] = field(default_factory=list)
    page_context: PageContext | None = None
    last_activity: float = 0.0
