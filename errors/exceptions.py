"""Domain-specific exceptions for the BacTunis AI service.

These exceptions allow the gateway, the tutor service and the API layer to
distinguish between transient provider failures, exhausted providers and
missing entities, and respond with a degraded message or an HTTP error.
"""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base class for provider gateway errors."""


class ProviderError(GatewayError):
    """A single provider call failed.

    ``details`` keeps the machine-readable part of the provider's error
    payload (e.g. Gemini ``errorDetails``) so the retry hint can be parsed
    from it later.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
        details: list[dict[str, Any]] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        self.details = details or []
        self.headers = headers or {}
        super().__init__(message)


class ModelsExhaustedError(GatewayError):
    """Every candidate model of one provider failed or was rate-limited.

    Carries the last underlying error so callers can inspect its retry hint.
    """

    def __init__(self, provider: str, last_error: BaseException | None = None) -> None:
        self.provider = provider
        self.last_error = last_error
        super().__init__(f"All {provider} models and retries exhausted")


class ProvidersExhaustedError(GatewayError):
    """Terminal: no provider could serve the request."""

    def __init__(self, message: str = "All AI providers exhausted") -> None:
        super().__init__(message)


class DeadlineExceededError(ProvidersExhaustedError):
    """The time budget ran out at a retry boundary.

    ``last_error`` is the failure that led to the skipped attempt, if any,
    so a quota signal is not lost when the budget cuts the retries short.
    """

    def __init__(self, deadline: float, last_error: BaseException | None = None) -> None:
        self.deadline = deadline
        self.last_error = last_error
        super().__init__("Deadline exceeded before a provider answered")


class DocumentNotFoundError(Exception):
    """A referenced document does not exist or belongs to another student."""

    def __init__(self, document_id: str) -> None:
        self.document_id = document_id
        super().__init__(f"Document '{document_id}' not found")


class ConversationNotFoundError(Exception):
    """A referenced conversation does not exist or belongs to another student."""

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation '{conversation_id}' not found")
