from __future__ import annotations

import secrets


def new_trace_id() -> str:
    return secrets.token_hex(16)


def new_tool_call_id() -> str:
    """Id for model tool calls that arrive without one."""

    return f"call_{secrets.token_hex(8)}"
