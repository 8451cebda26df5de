"""Reusable LLM call parameters.

``RetryPolicy`` bounds every retry loop in the gateway; ``GenerationConfig``
carries the per-task sampling parameters shared by both providers.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class RetryPolicy(BaseModel):
    """Bounded retry parameters for one provider path."""

    max_retries: int = Field(default=2, ge=1, le=10, description="Attempts per model")
    backoff_step_seconds: float = Field(default=8.0, ge=0.0)
    backoff_cap_seconds: float = Field(default=20.0, ge=0.0)

    def backoff_for(self, attempt: int) -> float:
        """Wait before the next attempt: grows with *attempt*, capped."""
        return min(attempt * self.backoff_step_seconds, self.backoff_cap_seconds)


class GenerationConfig(BaseModel):
    """Sampling parameters for one generation task.

    All fields are optional except ``max_tokens``.  ``None`` means
    "use the model's default".
    """

    max_tokens: int = Field(default=2000, ge=1, description="Max tokens to generate")
    temperature: float | None = Field(default=0.7, ge=0.0, le=2.0)
    json_mode: bool = Field(
        default=False, description="Ask the provider for a JSON object response"
    )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def to_litellm_kwargs(self) -> dict:
        """Convert to ``litellm.acompletion()``-compatible keyword arguments."""
        kw: dict = {"max_tokens": self.max_tokens}
        if self.temperature is not None:
            kw["temperature"] = self.temperature
        if self.json_mode:
            kw["response_format"] = {"type": "json_object"}
        return kw
