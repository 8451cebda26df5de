"""Provider adapters — the concrete vendors behind the gateway.

- :class:`PrimaryProvider`: Gemini through LiteLLM (``gemini/<model>``),
  plus the Gemini Files API for multimodal uploads over httpx.
- :class:`SecondaryProvider`: Groq through LiteLLM (``groq/<model>``),
  text-only, fed from a :class:`FallbackSpec`.

Every outbound completion runs under the per-worker LLM semaphore.  Vendor
exceptions are normalised to :class:`ProviderError` so the gateway only has
to look at ``status_code``.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence

import httpx
import litellm

from config.llm_config import GenerationConfig
from config.settings import Settings
from errors import ProviderError
from models.gateway import ChatMessage, FallbackSpec, ProviderName, RemoteFile
from services.concurrency import rate_limited_llm_call

logger = logging.getLogger(__name__)


# ── Error normalisation ──────────────────────────────────────


def status_code_of(exc: BaseException) -> int | None:
    """Best-effort HTTP status of a provider exception.

    Looks at ``status_code`` (LiteLLM, ProviderError), ``status`` (SDK
    style) and ``response.status_code`` (httpx.HTTPStatusError).
    """
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def to_provider_error(provider: ProviderName, exc: BaseException) -> ProviderError:
    """Wrap a vendor exception, keeping status, headers and message."""
    if isinstance(exc, ProviderError):
        return exc
    response = getattr(exc, "response", None)
    headers: dict[str, str] = {}
    raw_headers = getattr(response, "headers", None)
    if raw_headers is not None:
        try:
            headers = {k.lower(): v for k, v in raw_headers.items()}
        except AttributeError:
            headers = {}
    message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
    return ProviderError(
        provider=provider.value,
        message=str(message),
        status_code=status_code_of(exc),
        headers=headers,
    )


# ── Capability protocols ─────────────────────────────────────


class FallbackGenerator(Protocol):
    """What the gateway needs from the secondary provider."""

    async def generate(self, model: str, spec: FallbackSpec) -> str: ...


class FileUploader(Protocol):
    """What the gateway needs to push a document to the primary provider."""

    async def upload_file(self, data: bytes, mime_type: str, display_name: str) -> RemoteFile: ...


# ── Message helpers ──────────────────────────────────────────


def _openai_role(role: str) -> str:
    return "assistant" if role == "model" else role


def _to_openai_messages(
    system_prompt: str,
    messages: Sequence[ChatMessage],
) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})
    out.extend(
        {"role": _openai_role(m.role), "content": m.content}
        for m in messages
    )
    return out


def _response_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    return (getattr(message, "content", None) or "").strip()


# ── Primary: Gemini ──────────────────────────────────────────


class PrimaryProvider:
    """Gemini adapter: text/multimodal generation and file uploads."""

    def __init__(
        self,
        api_key: str,
        api_base: str = "https://generativelanguage.googleapis.com",
        timeout: float = 60,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._http = http_client

    @classmethod
    def from_settings(cls, settings: Settings) -> PrimaryProvider:
        return cls(
            api_key=settings.gemini_api_key,
            api_base=settings.gemini_api_base,
            timeout=settings.llm_request_timeout,
        )

    async def generate(
        self,
        model: str,
        *,
        prompt: str = "",
        history: Sequence[ChatMessage] = (),
        system_prompt: str = "",
        files: Sequence[RemoteFile] = (),
        config: GenerationConfig | None = None,
    ) -> str:
        """Run one Gemini completion and return its text ("" when empty).

        ``files`` are attached to the final user turn as Gemini file URIs.
        Raises :class:`ProviderError` on any vendor failure.
        """
        config = config or GenerationConfig()
        messages = _to_openai_messages(system_prompt, history)

        if files:
            content: list[dict[str, Any]] = [
                {"type": "file", "file": {"file_id": f.uri, "format": f.mime_type}}
                for f in files
            ]
            content.append({"type": "text", "text": prompt})
            messages.append({"role": "user", "content": content})
        else:
            messages.append({"role": "user", "content": prompt})

        try:
            response = await rate_limited_llm_call(
                litellm.acompletion,
                model=f"gemini/{model}",
                messages=messages,
                api_key=self._api_key,
                timeout=self._timeout,
                **config.to_litellm_kwargs(),
            )
        except Exception as exc:
            raise to_provider_error(ProviderName.PRIMARY, exc) from exc

        return _response_text(response)

    async def upload_file(self, data: bytes, mime_type: str, display_name: str) -> RemoteFile:
        """Upload *data* with the Files API resumable protocol (start + finalize)."""
        if self._http is not None:
            return await self._upload(self._http, data, mime_type, display_name)
        async with httpx.AsyncClient(timeout=120) as client:
            return await self._upload(client, data, mime_type, display_name)

    async def _upload(
        self,
        client: httpx.AsyncClient,
        data: bytes,
        mime_type: str,
        display_name: str,
    ) -> RemoteFile:
        try:
            start = await client.post(
                f"{self._api_base}/upload/v1beta/files",
                params={"key": self._api_key},
                headers={
                    "X-Goog-Upload-Protocol": "resumable",
                    "X-Goog-Upload-Command": "start",
                    "X-Goog-Upload-Header-Content-Length": str(len(data)),
                    "X-Goog-Upload-Header-Content-Type": mime_type,
                },
                json={"file": {"display_name": display_name}},
            )
            start.raise_for_status()
            upload_url = start.headers.get("x-goog-upload-url")
            if not upload_url:
                raise ProviderError(
                    ProviderName.PRIMARY.value,
                    "Files API did not return an upload URL",
                    status_code=start.status_code,
                )

            resp = await client.post(
                upload_url,
                headers={
                    "X-Goog-Upload-Offset": "0",
                    "X-Goog-Upload-Command": "upload, finalize",
                },
                content=data,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise to_provider_error(ProviderName.PRIMARY, exc) from exc

        file_info = resp.json().get("file") or {}
        uri = file_info.get("uri")
        if not uri:
            raise ProviderError(ProviderName.PRIMARY.value, "Files API response has no file uri")
        return RemoteFile(uri=uri, mime_type=file_info.get("mimeType") or mime_type)


# ── Secondary: Groq ──────────────────────────────────────────


class SecondaryProvider:
    """Groq adapter — text-only, used when Gemini is cooling down or failing."""

    def __init__(self, api_key: str, timeout: float = 60) -> None:
        self._api_key = api_key
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> SecondaryProvider | None:
        """Build the adapter, or ``None`` when no Groq key is configured."""
        if not settings.secondary_enabled:
            return None
        return cls(api_key=settings.groq_api_key, timeout=settings.llm_request_timeout)

    async def generate(self, model: str, spec: FallbackSpec) -> str:
        messages = _to_openai_messages(spec.system_prompt, spec.messages)
        try:
            response = await rate_limited_llm_call(
                litellm.acompletion,
                model=f"groq/{model}",
                messages=messages,
                api_key=self._api_key,
                timeout=self._timeout,
                max_tokens=spec.max_tokens,
                temperature=spec.temperature,
            )
        except Exception as exc:
            raise to_provider_error(ProviderName.SECONDARY, exc) from exc
        return _response_text(response)
