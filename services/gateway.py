"""Provider gateway — multi-provider completion with retry, cooldown and fallback.

Callers hand over two representations of the same logical request:

- a *primary request builder*: ``async (model_name) -> text``, which lets the
  caller control the exact Gemini request shape (chat, multimodal, JSON);
- an optional :class:`FallbackSpec` the secondary provider can run as-is.

Flow::

    primary available? ──yes──▶ rotate primary models (bounded retries)
          │                          │ ok → return text
          │ no (cooling down)        │ quota/exhausted → cooldown primary
          ▼                          ▼ any failure
    secondary configured + fallback given? ──▶ rotate secondary models
          │ no / failed
          ▼
    ProvidersExhaustedError

Which provider answered is deliberately not reported to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Protocol, Sequence

from config.llm_config import RetryPolicy
from config.settings import Settings, get_settings
from errors import (
    DeadlineExceededError,
    ModelsExhaustedError,
    ProvidersExhaustedError,
)
from models.gateway import FallbackSpec, ProviderName, RawDocument, RemoteFile
from services.json_extract import extract_structured_result
from services.provider_state import CooldownTracker, GatewayState, UploadCache
from services.providers import (
    FallbackGenerator,
    FileUploader,
    PrimaryProvider,
    SecondaryProvider,
    status_code_of,
)
from services.retry_hint import parse_retry_delay

logger = logging.getLogger(__name__)

PrimaryRequest = Callable[[str], Awaitable[str]]
Sleep = Callable[[float], Awaitable[Any]]


class RawDocumentSource(Protocol):
    """The slice of the document collaborator needed for uploads."""

    async def fetch_raw_data(self, document_id: str) -> RawDocument | None: ...


def _is_retryable(status: int | None) -> bool:
    return status is not None and (status == 429 or status >= 500)


def _is_quota_error(exc: BaseException) -> bool:
    """Quota exhaustion: the model list ran out, or the vendor said so."""
    if isinstance(exc, ModelsExhaustedError):
        return True
    if status_code_of(exc) == 429:
        return True
    message = str(exc).lower()
    return "quota" in message or "exhausted" in message


def _short(exc: BaseException, limit: int = 200) -> str:
    return str(exc)[:limit]


class ProviderGateway:
    """Produce a completion, transparently falling back across providers.

    All mutable state lives in the injected :class:`GatewayState`, so tests
    (and multiple apps in one process) get isolated gateways.
    """

    def __init__(
        self,
        *,
        primary_models: Sequence[str],
        secondary_models: Sequence[str] = (),
        secondary: FallbackGenerator | None = None,
        uploader: FileUploader | None = None,
        primary_policy: RetryPolicy | None = None,
        secondary_policy: RetryPolicy | None = None,
        state: GatewayState | None = None,
        default_cooldown_seconds: int = 60,
        min_cooldown_seconds: int = 60,
        primary_deadline_share: float = 0.6,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.primary_models = list(primary_models)
        self.secondary_models = list(secondary_models)
        self.secondary = secondary
        self.uploader = uploader
        self.primary_policy = primary_policy or RetryPolicy(
            backoff_step_seconds=8, backoff_cap_seconds=20
        )
        self.secondary_policy = secondary_policy or RetryPolicy(
            backoff_step_seconds=5, backoff_cap_seconds=15
        )
        self.state = state or GatewayState(
            cooldowns=CooldownTracker(clock=clock),
            uploads=UploadCache(clock=clock),
        )
        self.default_cooldown_seconds = default_cooldown_seconds
        self.min_cooldown_seconds = min_cooldown_seconds
        self.primary_deadline_share = primary_deadline_share
        self._sleep = sleep
        self._clock = clock

        if secondary is None:
            logger.info("No secondary provider configured — only the primary will be used")
        else:
            logger.info("Secondary provider initialized (fallback ready)")

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        primary: PrimaryProvider | None = None,
    ) -> ProviderGateway:
        """Wire the production gateway from configuration."""
        settings = settings or get_settings()
        primary = primary or PrimaryProvider.from_settings(settings)
        return cls(
            primary_models=settings.primary_models,
            secondary_models=settings.secondary_models,
            secondary=SecondaryProvider.from_settings(settings),
            uploader=primary,
            primary_policy=settings.get_primary_retry_policy(),
            secondary_policy=settings.get_secondary_retry_policy(),
            state=GatewayState(
                cooldowns=CooldownTracker(),
                uploads=UploadCache(ttl_seconds=settings.upload_cache_ttl_seconds),
            ),
            default_cooldown_seconds=settings.default_cooldown_seconds,
            min_cooldown_seconds=settings.min_cooldown_seconds,
            primary_deadline_share=settings.primary_deadline_share,
        )

    # ── Public API ───────────────────────────────────────────

    @property
    def secondary_enabled(self) -> bool:
        return self.secondary is not None and bool(self.secondary_models)

    def is_available(self, provider: ProviderName) -> bool:
        return self.state.cooldowns.is_available(provider)

    async def complete(
        self,
        primary_request: PrimaryRequest,
        fallback: FallbackSpec | None = None,
        *,
        deadline: float | None = None,
    ) -> str:
        """Return generated text from whichever provider can serve it.

        Args:
            primary_request: ``async (model_name) -> text`` performing one
                primary-provider call.
            fallback: Secondary-provider representation of the request.
                Without it (or without a secondary provider) no fallback
                is attempted.
            deadline: Optional time budget in seconds, checked at every
                retry boundary. When a fallback can run, the primary may
                only spend ``primary_deadline_share`` of it.

        Raises:
            ProvidersExhaustedError: no provider produced a response.
            DeadlineExceededError: the budget ran out first.
        """
        can_fall_back = self.secondary_enabled and fallback is not None
        deadline_at = primary_deadline_at = None
        if deadline is not None:
            start = self._clock()
            deadline_at = start + deadline
            share = self.primary_deadline_share if can_fall_back else 1.0
            primary_deadline_at = start + deadline * share
        cooldowns = self.state.cooldowns

        if cooldowns.is_available(ProviderName.PRIMARY):
            try:
                return await self._call_primary_with_retry(primary_request, primary_deadline_at)
            except DeadlineExceededError as exc:
                # The budget cut the retries short; a quota signal still counts
                if exc.last_error is not None and _is_quota_error(exc.last_error):
                    self._cool_down_primary(exc.last_error)
                if not can_fall_back:
                    raise
                logger.warning("Primary budget spent, falling back to secondary")
            except Exception as exc:
                if _is_quota_error(exc):
                    self._cool_down_primary(exc)
                    logger.info("Primary provider rate-limited, switching to secondary...")
                else:
                    logger.error("Primary provider non-quota error: %s", _short(exc))
        else:
            logger.info(
                "Primary still on cooldown (%.0fs left), using secondary directly",
                cooldowns.remaining(ProviderName.PRIMARY),
            )

        if can_fall_back:
            assert fallback is not None
            try:
                return await self._call_secondary_with_retry(fallback, deadline_at)
            except DeadlineExceededError:
                raise
            except Exception as exc:
                logger.error("Secondary fallback also failed: %s", _short(exc))

        raise ProvidersExhaustedError()

    async def upload_and_cache(
        self,
        document_id: str,
        documents: RawDocumentSource,
    ) -> RemoteFile | None:
        """Return a remote handle for *document_id*, uploading at most once.

        Returns ``None`` — never raises — when the document is missing or
        the upload fails; callers proceed without multimodal context.
        """
        uploads = self.state.uploads
        cached = uploads.get(document_id)
        if cached is not None:
            return cached

        if self.uploader is None:
            logger.warning("No file uploader configured, skipping upload of %s", document_id)
            return None

        try:
            raw = await documents.fetch_raw_data(document_id)
            if raw is None:
                logger.warning("Document %s has no raw data to upload", document_id)
                return None
            remote = await self.uploader.upload_file(raw.data, raw.mime_type, raw.name)
        except Exception as exc:
            logger.error("File upload failed for %s: %s", document_id, _short(exc))
            return None

        uploads.put(document_id, remote)
        logger.info("File uploaded to primary provider: %s → %s", raw.name, remote.uri)
        return remote

    def invalidate_upload(self, document_id: str) -> None:
        """Drop the cached remote handle of a deleted or replaced document."""
        self.state.uploads.invalidate(document_id)

    extract_structured_result = staticmethod(extract_structured_result)

    # ── Retry loops ──────────────────────────────────────────

    def _cool_down_primary(self, error: BaseException) -> None:
        hint = parse_retry_delay(error, default=self.default_cooldown_seconds)
        self.state.cooldowns.cool_down(ProviderName.PRIMARY, max(hint, self.min_cooldown_seconds))

    def _check_deadline(
        self, deadline_at: float | None, last_error: BaseException | None = None
    ) -> None:
        if deadline_at is not None and self._clock() >= deadline_at:
            raise DeadlineExceededError(deadline_at, last_error)

    async def _backoff(
        self, seconds: float, deadline_at: float | None, last_error: BaseException | None
    ) -> None:
        if deadline_at is not None and self._clock() + seconds > deadline_at:
            raise DeadlineExceededError(deadline_at, last_error)
        await self._sleep(seconds)

    async def _call_primary_with_retry(
        self,
        build_request: PrimaryRequest,
        deadline_at: float | None,
    ) -> str:
        """Rotate primary models; retry 429/5xx, propagate anything else."""
        policy = self.primary_policy
        last_error: BaseException | None = None

        for model in self.primary_models:
            for attempt in range(1, policy.max_retries + 1):
                self._check_deadline(deadline_at, last_error)
                try:
                    return await build_request(model)
                except Exception as exc:
                    status = status_code_of(exc)
                    if not _is_retryable(status):
                        raise
                    last_error = exc
                    if attempt == policy.max_retries:
                        break
                    wait = policy.backoff_for(attempt)
                    logger.warning(
                        "Primary %s - %s (attempt %d/%d). Waiting %ss...",
                        model,
                        "Rate limited" if status == 429 else "Server error",
                        attempt,
                        policy.max_retries,
                        wait,
                    )
                    await self._backoff(wait, deadline_at, last_error)
            logger.warning("All retries exhausted for primary %s, trying next...", model)

        raise ModelsExhaustedError(ProviderName.PRIMARY.value, last_error) from last_error

    async def _call_secondary_with_retry(
        self,
        spec: FallbackSpec,
        deadline_at: float | None,
    ) -> str:
        """Rotate secondary models; only rate limits are retried in place."""
        assert self.secondary is not None
        policy = self.secondary_policy
        last_error: BaseException | None = None

        for model in self.secondary_models:
            for attempt in range(1, policy.max_retries + 1):
                self._check_deadline(deadline_at, last_error)
                try:
                    text = await self.secondary.generate(model, spec)
                except Exception as exc:
                    last_error = exc
                    if status_code_of(exc) != 429:
                        logger.error("Secondary %s error: %s", model, _short(exc, 150))
                        break  # next model
                    if attempt == policy.max_retries:
                        break
                    wait = policy.backoff_for(attempt)
                    logger.warning(
                        "Secondary %s rate limited (attempt %d). Waiting %ss...",
                        model, attempt, wait,
                    )
                    await self._backoff(wait, deadline_at, last_error)
                    continue

                if text:
                    logger.info("Secondary %s responded (%d chars)", model, len(text))
                    return text
                logger.warning("Secondary %s returned an empty response", model)

        raise ModelsExhaustedError(ProviderName.SECONDARY.value, last_error) from last_error
