"""Custom exception hierarchy for the BacTunis AI service."""

from errors.exceptions import (
    ConversationNotFoundError,
    DeadlineExceededError,
    DocumentNotFoundError,
    GatewayError,
    ModelsExhaustedError,
    ProviderError,
    ProvidersExhaustedError,
)

__all__ = [
    "ConversationNotFoundError",
    "DeadlineExceededError",
    "DocumentNotFoundError",
    "GatewayError",
    "ModelsExhaustedError",
    "ProviderError",
    "ProvidersExhaustedError",
]
