"""Provider-neutral completion contract with shared retry/backoff policy.

Each backend translates a CanonicalRequest to its wire shape in `_send` and
raises one of the ProviderError subclasses on failure. `complete` owns the
policy that is identical for every backend:

- a request is attempted up to `max_retries + 1` times;
- timeouts, 401/403, 400 and any other failure are terminal;
- 429 and 5xx are retried after `2 ** attempt` seconds (attempt is 0-based);
- the per-attempt deadline is independent of the backoff schedule.
"""

from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

import httpx

from tabpilot.core.config import ProviderConfig
from tabpilot.core.errors import (
    AuthenticationError,
    ClientRequestError,
    NetworkTimeout,
    ProviderError,
    ProviderResponseError,
    RateLimitOrServerError,
)
from tabpilot.core.types import CanonicalRequest, CanonicalResponse
from tabpilot.observability.logging import get_logger

SleepFn = Callable[[float], Awaitable[None]]


def classify_status(status: int, detail: str) -> ProviderError:
    """Map an HTTP error status to the terminal/retryable taxonomy."""

    message = f"HTTP {status}: {detail}" if detail else f"HTTP {status}"
    if status in (401, 403):
        return AuthenticationError(message, status=status)
    if status == 400:
        return ClientRequestError(message, status=status)
    if status == 429 or 500 <= status <= 599:
        return RateLimitOrServerError(message, status=status)
    return ProviderResponseError(message, status=status)


def error_detail(body: Any) -> str:
    """Best-effort extraction of `error.message` from a JSON error body."""

    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            return err["message"]
        if isinstance(err, str):
            return err
        if isinstance(body.get("message"), str):
            return body["message"]
    return ""


class ProviderClient(ABC):
    """One LLM backend behind the canonical `complete()` contract."""

    name = "provider"

    def __init__(
        self,
        cfg: ProviderConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._cfg = cfg
        self._http = http_client
        self._owns_http = http_client is None
        self._sleep = sleep
        self._log = get_logger(f"tabpilot.llm.{self.name}")

    @property
    def config(self) -> ProviderConfig:
        return self._cfg

    async def complete(self, request: CanonicalRequest, deadline: float | None = None) -> CanonicalResponse:
        timeout_s = deadline if deadline is not None else self._cfg.timeout_s
        max_retries = max(0, int(self._cfg.max_retries))

        attempt = 0
        while True:
            t0 = time.perf_counter()
            try:
                response = await asyncio.wait_for(self._send(request, timeout_s), timeout=timeout_s)
            except asyncio.TimeoutError as e:
                self._log.warning("provider_attempt_failed", attempt=attempt, error_type="NetworkTimeout")
                raise NetworkTimeout(f"{self.name} request exceeded {timeout_s}s") from e
            except ProviderError as e:
                self._log.warning(
                    "provider_attempt_failed",
                    attempt=attempt,
                    error_type=type(e).__name__,
                    status=e.status,
                )
                if not e.retryable or attempt >= max_retries:
                    raise
                delay = float(2**attempt)
                self._log.info("provider_retry_scheduled", attempt=attempt, delay_s=delay)
                await self._sleep(delay)
                attempt += 1
                continue

            self._log.info(
                "provider_complete",
                attempt=attempt,
                latency_ms=round((time.perf_counter() - t0) * 1000, 2),
                tool_calls=len(response.tool_calls or []),
                content_len=len(response.content),
            )
            return response

    @abstractmethod
    async def _send(self, request: CanonicalRequest, timeout_s: float) -> CanonicalResponse:
        """Perform one attempt; raise a ProviderError subclass on failure."""

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient()
            self._owns_http = True
        return self._http

    async def _post_json(
        self,
        url: str,
        *,
        body: dict[str, Any],
        headers: dict[str, str],
        timeout_s: float,
    ) -> dict[str, Any]:
        try:
            resp = await self._client().post(url, json=body, headers=headers, timeout=timeout_s)
        except httpx.TimeoutException as e:
            raise NetworkTimeout(f"{self.name} request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderResponseError(f"{self.name} transport error: {e}") from e

        try:
            data = resp.json()
        except json.JSONDecodeError:
            data = None

        if resp.status_code >= 400:
            raise classify_status(resp.status_code, error_detail(data) or resp.text[:200])

        if not isinstance(data, dict):
            raise ProviderResponseError(f"{self.name} returned a non-JSON body")
        return data

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None
