"""Typed exceptions for AI feature runs.

WHY: The orchestrator has to tell three situations apart: a user cancelled
(terminal, not an error), a single batch produced garbage (log it and move
on), and the run cannot work at all (misconfiguration). A small exception
hierarchy with stable codes lets it do so without string matching.

HOW: AIError carries a machine-readable code and an optional details dict.
Subclasses override user_message() with text suitable for the UI.
to_ai_error() normalizes anything raised by a collaborator.

RULES:
- AICancellationError is raised when a CancellationToken fires
- asyncio.CancelledError is never converted here; it must propagate
- AIProviderError carries the HTTP status code when there is one
"""

from __future__ import annotations

from typing import Any


class AIError(Exception):
    """Base class for all AI feature errors."""

    code = "UNKNOWN_ERROR"

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def user_message(self) -> str:
        return self.message


class AIParseError(AIError):
    """Raised when a model response contains no usable JSON."""

    code = "PARSE_ERROR"

    def __init__(self, message: str, raw_response: str | None = None) -> None:
        super().__init__(message)
        self.raw_response = raw_response

    def user_message(self) -> str:
        return "The AI returned an unexpected response format. Please try again."


class AIValidationError(AIError):
    """Raised when parsed JSON does not match the feature's response schema."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, validation_errors: list[str] | None = None) -> None:
        super().__init__(message, details={"validation_errors": list(validation_errors or [])})
        self.validation_errors = list(validation_errors or [])

    def user_message(self) -> str:
        return "The AI response was invalid. Please try again with different input."


class AICancellationError(AIError):
    """Raised when a run's cancellation token fires."""

    code = "CANCELLED"

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message)

    def user_message(self) -> str:
        return "The operation was cancelled."


class AIConfigurationError(AIError):
    """Raised when no provider/model is configured for a feature."""

    code = "CONFIGURATION_ERROR"

    def user_message(self) -> str:
        return "AI is not configured. Configure an AI provider and model first."


class AIProviderError(AIError):
    """Raised when the provider's HTTP endpoint fails.

    code is one of AUTH_ERROR, RATE_LIMIT, CONNECTION_ERROR, PROVIDER_ERROR.
    """

    code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.status_code = status_code
        self.retry_after = retry_after

    def user_message(self) -> str:
        if self.code == "AUTH_ERROR":
            return "The AI provider rejected the credentials. Check the API key."
        if self.code == "RATE_LIMIT":
            if self.retry_after:
                return f"The AI provider is rate limiting requests. Retry in {self.retry_after:.0f}s."
            return "The AI provider is rate limiting requests. Try again shortly."
        if self.code == "CONNECTION_ERROR":
            return "Could not reach the AI provider. Check that the server is running."
        return self.message


def is_cancellation_error(error: BaseException) -> bool:
    return isinstance(error, AICancellationError)


def to_ai_error(error: BaseException) -> AIError:
    if isinstance(error, AIError):
        return error
    return AIError(str(error) or type(error).__name__, details={"original_error": type(error).__name__})
