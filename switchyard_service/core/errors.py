"""Exception hierarchy shared by the orchestration core and its collaborators."""
from typing import Any, Optional


class SwitchyardError(Exception):
    """Base class for all service errors."""


class InvalidRequestError(SwitchyardError):
    """The inbound request failed validation."""


class IntegrationError(SwitchyardError):
    """An integration gateway call failed."""

    def __init__(self, message: str, status: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.status = status
        self.retryable = retryable


RETRYABLE_ERROR_CODES = {
    "rate_limit_exceeded",
    "server_error",
    "timeout",
    "connection_error",
    "incomplete_stream",
}

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

_USER_MESSAGES = {
    "insufficient_quota": "API quota exceeded. Please check the provider billing settings.",
    "rate_limit_exceeded": "Rate limit reached. Please wait a moment and try again.",
    "invalid_api_key": "Invalid API key. Please check your configuration.",
    "model_not_found": "Model not available. Please try a different model.",
    "server_error": "The model provider had a server error. Please try again in a moment.",
    "context_length_exceeded": "Message too long. Please try a shorter message.",
    "invalid_request_error": "Invalid request. Please check your input.",
    "incomplete_stream": "The response stream ended unexpectedly. Please try again.",
}


class ProviderCallError(SwitchyardError):
    """A completion provider call failed; `retryable` separates transient from fatal faults."""

    def __init__(
        self,
        code: str,
        message: str,
        status: Optional[int] = None,
        retryable: bool = False,
        user_message: Optional[str] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.retryable = retryable
        self.user_message = user_message or message

    @classmethod
    def from_details(cls, code: Optional[str], message: Optional[str], status: Optional[int] = None) -> "ProviderCallError":
        code = code or "unknown_error"
        message = message or "An unknown error occurred"
        lowered = message.lower()
        retryable = (
            code in RETRYABLE_ERROR_CODES
            or (status is not None and status in RETRYABLE_STATUS_CODES)
            or "rate limit" in lowered
            or "timeout" in lowered
            or "timed out" in lowered
            or "overloaded" in lowered
        )

        user_message = _USER_MESSAGES.get(code)
        if user_message is None:
            if status == 503:
                user_message = "The model provider is overloaded. Please try again later."
            elif status == 401:
                user_message = "Authentication with the model provider failed."
            elif status == 429:
                user_message = "Too many requests. Please wait a moment."
            elif len(message) < 150 and "API" not in message:
                user_message = message
            else:
                user_message = "Something went wrong. Please try again."

        return cls(code=code, message=message, status=status, retryable=retryable, user_message=user_message)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ProviderCallError":
        """Classify an arbitrary SDK/transport exception."""
        if isinstance(exc, ProviderCallError):
            return exc
        body: Any = getattr(exc, "body", None)
        nested = body.get("error", body) if isinstance(body, dict) else {}
        if not isinstance(nested, dict):
            nested = {}
        code = getattr(exc, "code", None) or nested.get("code")
        status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
        message = nested.get("message") or getattr(exc, "message", None) or str(exc)
        if code is None:
            name = type(exc).__name__.lower()
            if "timeout" in name:
                code = "timeout"
            elif "connection" in name:
                code = "connection_error"
        return cls.from_details(code, message, status if isinstance(status, int) else None)
