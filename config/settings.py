"""Pydantic Settings — typed configuration with .env auto-loading."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from config.llm_config import RetryPolicy


class Settings(BaseSettings):
    """Application configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    service_port: int = 5000
    cors_origins: list[str] = ["*"]
    debug: bool = False

    # ── Providers ────────────────────────────────────────────
    # Primary (Gemini) is required; secondary (Groq) is optional and
    # fallback is simply never attempted without its key.
    gemini_api_key: str = ""
    groq_api_key: str = ""
    gemini_api_base: str = "https://generativelanguage.googleapis.com"

    # Model rotation lists, consulted top-to-bottom
    primary_models: list[str] = [
        "gemini-2.5-flash-lite",
        "gemini-3-flash-preview",
        "gemini-2.5-flash",
        "gemini-2.0-flash",
    ]
    secondary_models: list[str] = [
        "llama-3.3-70b-versatile",
        "llama-3.1-8b-instant",
        "gemma2-9b-it",
    ]

    # ── Retry / cooldown ─────────────────────────────────────
    max_retries: int = 2
    primary_backoff_step: float = 8.0  # wait = min(attempt * step, cap)
    primary_backoff_cap: float = 20.0
    secondary_backoff_step: float = 5.0
    secondary_backoff_cap: float = 15.0
    default_cooldown_seconds: int = 60  # used when no retry hint is found
    min_cooldown_seconds: int = 60
    llm_request_timeout: int = 60  # seconds, per provider call
    request_deadline_seconds: float | None = 150  # whole-gateway budget per request
    primary_deadline_share: float = 0.6  # of the budget, when a fallback can run
    max_concurrent_llm: int = 10  # per worker

    # ── Uploads / documents ──────────────────────────────────
    # Gemini deletes uploaded files after 48h; expire handles a bit earlier.
    upload_cache_ttl_seconds: int = 47 * 3600
    uploads_dir: str = "uploads"
    max_upload_bytes: int = 10 * 1024 * 1024
    document_text_limit: int = 5000  # chars of extracted text inlined in chat
    min_document_text: int = 50  # below this, fall back to multimodal upload

    # ── Conversation Memory ──────────────────────────────────
    history_turns: int = 20

    # ── Helpers ───────────────────────────────────────────────

    @property
    def secondary_enabled(self) -> bool:
        return bool(self.groq_api_key)

    def get_primary_retry_policy(self) -> RetryPolicy:
        """Retry policy for the primary provider path."""
        return RetryPolicy(
            max_retries=self.max_retries,
            backoff_step_seconds=self.primary_backoff_step,
            backoff_cap_seconds=self.primary_backoff_cap,
        )

    def get_secondary_retry_policy(self) -> RetryPolicy:
        """Retry policy for the secondary provider path."""
        return RetryPolicy(
            max_retries=self.max_retries,
            backoff_step_seconds=self.secondary_backoff_step,
            backoff_cap_seconds=self.secondary_backoff_cap,
        )


@lru_cache
def get_settings() -> Settings:
    """Singleton accessor for application settings."""
    return Settings()
