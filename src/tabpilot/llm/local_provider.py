from __future__ import annotations

from typing import Any

from tabpilot.core.errors import ProviderResponseError
from tabpilot.core.types import CanonicalRequest, CanonicalResponse, Usage

from .base import ProviderClient


def build_local_body(request: CanonicalRequest, *, model: str) -> dict[str, Any]:
    """Ollama-style chat body. Tool definitions are never sent."""

    return {
        "model": model,
        "messages": [
            {"role": "system", "content": request.system},
            *({"role": m.role, "content": m.content} for m in request.messages),
        ],
        "stream": False,
        "options": {
            "temperature": request.temperature,
            "num_predict": request.max_tokens,
        },
    }


def parse_local_response(data: dict[str, Any]) -> CanonicalResponse:
    message = data.get("message")
    if not isinstance(message, dict):
        raise ProviderResponseError("local response has no message")

    return CanonicalResponse(
        content=str(message.get("content") or ""),
        # Local models are not offered tools, so tool calls are never returned.
        tool_calls=None,
        usage=Usage(
            input_tokens=int(data.get("prompt_eval_count") or 0),
            output_tokens=int(data.get("eval_count") or 0),
        ),
    )


class LocalProvider(ProviderClient):
    """Local (Ollama-compatible) backend over httpx. No API key required."""

    name = "local"

    async def _send(self, request: CanonicalRequest, timeout_s: float) -> CanonicalResponse:
        data = await self._post_json(
            f"{self._cfg.resolved_base_url}/api/chat",
            body=build_local_body(request, model=self._cfg.model),
            headers={"content-type": "application/json"},
            timeout_s=timeout_s,
        )
        return parse_local_response(data)
