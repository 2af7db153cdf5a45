from __future__ import annotations

from typing import Any


class TabpilotError(Exception):
    """Base exception for this project."""


class ConfigError(TabpilotError):
    """Raised when configuration is invalid or incomplete."""

    def __init__(self, message: str, *, path: str | None = None):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


class ProviderError(TabpilotError):
    """A terminal (or exhausted) failure talking to an LLM backend.

    `user_message` is the plain-language text surfaced to the end user; the
    exception message keeps the technical detail for logs.
    """

    retryable = False
    user_message = "The AI provider request failed."

    def __init__(self, message: str, *, user_message: str | None = None, status: int | None = None):
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message
        self.status = status


class NetworkTimeout(ProviderError):
    user_message = "The AI provider did not respond in time. Please try again."


class AuthenticationError(ProviderError):
    user_message = "Authentication with the AI provider failed. Please check your API key in settings."


class ClientRequestError(ProviderError):
    user_message = "The AI provider rejected the request as invalid."


class RateLimitOrServerError(ProviderError):
    retryable = True
    user_message = "The AI provider is busy or unavailable. Please try again later."


class ProviderResponseError(ProviderError):
    user_message = "The AI provider returned an unexpected response."


class UnknownProvider(ConfigError):
    def __init__(self, provider: object):
        super().__init__(f"Unknown provider: {provider!r}", path="provider")
        self.provider = provider


class ExecutorUnreachable(TabpilotError):
    """No page executor is attached to the target tab."""

    def __init__(self, target_id: str, message: str = "page executor unreachable"):
        super().__init__(f"{message} (tab {target_id})")
        self.target_id = target_id


class ToolRejected(TabpilotError):
    """Structured tool rejection.

    Raised inside the page executor when a tool cannot complete; converted to a
    ToolResult with success=False rather than escaping the batch.
    """

    error_type = "tool_rejected"

    def __init__(
        self,
        message: str,
        *,
        error_type: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if error_type is not None:
            self.error_type = error_type
        self.message = message
        self.details = details or {}


class ElementNotFound(ToolRejected):
    error_type = "element_not_found"


class ElementNotVisible(ToolRejected):
    error_type = "element_not_visible"


class ActionExecutionFailed(ToolRejected):
    error_type = "action_failed"


class FieldExtractionError(TabpilotError):
    """One field of a structured extraction could not be produced."""
