from __future__ import annotations

import asyncio
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from tabpilot.core.config import ProviderConfig
from tabpilot.core.errors import NetworkTimeout, ProviderResponseError
from tabpilot.core.types import CanonicalRequest, CanonicalResponse, Message, ToolCall, Usage

from .base import ProviderClient, SleepFn, classify_status


def to_openai_message(m: Message) -> dict[str, Any]:
    if m.role == "tool":
        return {"role": "tool", "tool_call_id": m.tool_call_id or "", "content": m.content}
    if m.role == "assistant" and m.tool_calls:
        return {
            "role": "assistant",
            "content": m.content or None,
            "tool_calls": [tc.to_dict() for tc in m.tool_calls],
        }
    return {"role": m.role, "content": m.content}


def build_openai_body(request: CanonicalRequest, *, model: str) -> dict[str, Any]:
    """Chat Completions request body for a canonical request."""

    body: dict[str, Any] = {
        "model": model,
        "messages": [
            {"role": "system", "content": request.system},
            *(to_openai_message(m) for m in request.messages),
        ],
        "temperature": request.temperature,
        "max_tokens": request.max_tokens,
    }
    if request.tools:
        body["tools"] = list(request.tools)
        body["tool_choice"] = request.tool_choice
    return body


def parse_openai_response(data: dict[str, Any]) -> CanonicalResponse:
    choices = data.get("choices") or []
    if not choices:
        raise ProviderResponseError("openai response has no choices")

    message = choices[0].get("message") or {}
    tool_calls: list[ToolCall] = []
    for tc in message.get("tool_calls") or []:
        fn = tc.get("function") or {}
        tool_calls.append(
            ToolCall(
                id=str(tc.get("id", "")),
                name=str(fn.get("name", "")),
                arguments_json=fn.get("arguments") or "{}",
            )
        )

    usage_raw = data.get("usage") or {}
    usage = Usage(
        input_tokens=int(usage_raw.get("prompt_tokens") or 0),
        output_tokens=int(usage_raw.get("completion_tokens") or 0),
    )

    return CanonicalResponse(
        content=message.get("content") or "",
        tool_calls=tool_calls or None,
        usage=usage,
    )


class OpenAIProvider(ProviderClient):
    """OpenAI-style backend through the official async SDK.

    SDK-level retries are disabled; the shared policy in `ProviderClient` decides.
    """

    name = "openai"

    def __init__(
        self,
        cfg: ProviderConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        super().__init__(cfg, http_client=http_client, sleep=sleep)
        api_key = cfg.api_key.get_secret_value() if cfg.api_key is not None else ""
        self._sdk = AsyncOpenAI(
            api_key=api_key,
            base_url=cfg.resolved_base_url,
            timeout=cfg.timeout_s,
            max_retries=0,
            http_client=http_client,
        )

    async def _send(self, request: CanonicalRequest, timeout_s: float) -> CanonicalResponse:
        body = build_openai_body(request, model=self._cfg.model)
        try:
            completion = await self._sdk.chat.completions.create(**body, timeout=timeout_s)
        except openai.APITimeoutError as e:
            raise NetworkTimeout(f"openai request timed out: {e}") from e
        except openai.APIStatusError as e:
            raise classify_status(e.status_code, _sdk_error_message(e)) from e
        except openai.APIError as e:
            raise ProviderResponseError(f"openai request failed: {e}") from e

        return parse_openai_response(completion.model_dump())

    async def aclose(self) -> None:
        await self._sdk.close()


def _sdk_error_message(e: openai.APIStatusError) -> str:
    body = e.body
    if isinstance(body, dict):
        err = body.get("error", body)
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            return err["message"]
    return e.message
