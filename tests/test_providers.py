"""Tests for services/providers.py — LiteLLM adapters and the Gemini Files API upload."""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from config.llm_config import GenerationConfig
from config.settings import Settings
from errors import ProviderError
from models.gateway import ChatMessage, FallbackSpec, ProviderName, RemoteFile
from services.providers import (
    PrimaryProvider,
    SecondaryProvider,
    status_code_of,
    to_provider_error,
)


def _completion(text: str | None):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class _VendorError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


# ── Error normalisation ──────────────────────────────────────


def test_status_code_of_variants():
    assert status_code_of(_VendorError("x", 429)) == 429
    assert status_code_of(SimpleNamespace(status=503)) == 503
    assert status_code_of(SimpleNamespace(response=SimpleNamespace(status_code=404))) == 404
    assert status_code_of(RuntimeError("no status")) is None


def test_to_provider_error_keeps_status_and_headers():
    request = httpx.Request("POST", "https://example.test")
    response = httpx.Response(429, headers={"Retry-After": "9"}, request=request)
    exc = httpx.HTTPStatusError("Too Many Requests", request=request, response=response)

    err = to_provider_error(ProviderName.SECONDARY, exc)

    assert err.provider == "secondary"
    assert err.status_code == 429
    assert err.headers["retry-after"] == "9"


def test_to_provider_error_passthrough():
    original = ProviderError("primary", "boom", status_code=500)
    assert to_provider_error(ProviderName.PRIMARY, original) is original


# ── PrimaryProvider.generate ─────────────────────────────────


class TestPrimaryGenerate:
    @pytest.fixture
    def provider(self) -> PrimaryProvider:
        return PrimaryProvider(api_key="gm-key", timeout=30)

    async def test_chat_request_shape(self, provider):
        mock = AsyncMock(return_value=_completion("  Salut!  "))
        with patch("services.providers.litellm.acompletion", mock):
            text = await provider.generate(
                "gemini-2.5-flash",
                prompt="Explique les suites",
                history=[
                    ChatMessage(role="user", content="Bonjour"),
                    ChatMessage(role="model", content="Salut"),
                ],
                system_prompt="Tu es BacTunis",
                config=GenerationConfig(max_tokens=2000, temperature=0.7),
            )

        assert text == "Salut!"
        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "gemini/gemini-2.5-flash"
        assert kwargs["api_key"] == "gm-key"
        assert kwargs["timeout"] == 30
        assert kwargs["max_tokens"] == 2000
        assert kwargs["messages"] == [
            {"role": "system", "content": "Tu es BacTunis"},
            {"role": "user", "content": "Bonjour"},
            {"role": "assistant", "content": "Salut"},
            {"role": "user", "content": "Explique les suites"},
        ]
        assert "response_format" not in kwargs

    async def test_files_become_file_parts(self, provider):
        mock = AsyncMock(return_value=_completion("vu"))
        remote = RemoteFile(uri="https://files/abc", mime_type="application/pdf")
        with patch("services.providers.litellm.acompletion", mock):
            await provider.generate("gemini-2.0-flash", prompt="Analyse", files=[remote])

        last = mock.call_args.kwargs["messages"][-1]
        assert last["role"] == "user"
        assert last["content"][0] == {
            "type": "file",
            "file": {"file_id": "https://files/abc", "format": "application/pdf"},
        }
        assert last["content"][-1] == {"type": "text", "text": "Analyse"}

    async def test_json_mode(self, provider):
        mock = AsyncMock(return_value=_completion("{}"))
        with patch("services.providers.litellm.acompletion", mock):
            await provider.generate("m", prompt="p", config=GenerationConfig(json_mode=True))
        assert mock.call_args.kwargs["response_format"] == {"type": "json_object"}

    async def test_empty_choices_yield_empty_text(self, provider):
        mock = AsyncMock(return_value=SimpleNamespace(choices=[]))
        with patch("services.providers.litellm.acompletion", mock):
            assert await provider.generate("m", prompt="p") == ""

    async def test_vendor_error_is_wrapped(self, provider):
        mock = AsyncMock(side_effect=_VendorError("RESOURCE_EXHAUSTED", 429))
        with patch("services.providers.litellm.acompletion", mock):
            with pytest.raises(ProviderError) as exc_info:
                await provider.generate("m", prompt="p")

        assert exc_info.value.provider == "primary"
        assert exc_info.value.status_code == 429
        assert isinstance(exc_info.value.__cause__, _VendorError)


# ── PrimaryProvider.upload_file ──────────────────────────────


class TestPrimaryUpload:
    async def test_resumable_upload(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.headers.get("x-goog-upload-command") == "start":
                return httpx.Response(200, headers={"x-goog-upload-url": "https://upload.test/session/1"})
            return httpx.Response(
                200,
                json={"file": {"uri": "https://generativelanguage.googleapis.com/v1beta/files/xyz", "mimeType": "application/pdf"}},
            )

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = PrimaryProvider(api_key="gm-key", api_base="https://gemini.test/", http_client=client)
            remote = await provider.upload_file(b"%PDF-1.4", "application/pdf", "cours.pdf")

        assert remote == RemoteFile(
            uri="https://generativelanguage.googleapis.com/v1beta/files/xyz",
            mime_type="application/pdf",
        )
        start, finalize = seen
        assert start.url.path == "/upload/v1beta/files"
        assert start.url.params["key"] == "gm-key"
        assert start.headers["x-goog-upload-protocol"] == "resumable"
        assert start.headers["x-goog-upload-header-content-length"] == "8"
        assert json.loads(start.content) == {"file": {"display_name": "cours.pdf"}}
        assert str(finalize.url) == "https://upload.test/session/1"
        assert finalize.headers["x-goog-upload-command"] == "upload, finalize"
        assert finalize.content == b"%PDF-1.4"

    async def test_http_error_is_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"error": {"message": "API key invalid"}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = PrimaryProvider(api_key="bad", http_client=client)
            with pytest.raises(ProviderError) as exc_info:
                await provider.upload_file(b"x", "text/plain", "notes.txt")

        assert exc_info.value.status_code == 403

    async def test_missing_upload_url(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = PrimaryProvider(api_key="k", http_client=client)
            with pytest.raises(ProviderError, match="upload URL"):
                await provider.upload_file(b"x", "text/plain", "notes.txt")


# ── SecondaryProvider ────────────────────────────────────────


class TestSecondary:
    def test_from_settings_without_key_is_none(self):
        assert SecondaryProvider.from_settings(Settings(groq_api_key="")) is None

    def test_from_settings_with_key(self):
        provider = SecondaryProvider.from_settings(Settings(groq_api_key="gsk_1"))
        assert isinstance(provider, SecondaryProvider)

    async def test_generate_from_fallback_spec(self):
        spec = FallbackSpec(
            system_prompt="Tu es BacTunis",
            messages=[
                ChatMessage(role="user", content="Salut"),
                ChatMessage(role="model", content="Bonjour!"),
                ChatMessage(role="user", content="Aide-moi"),
            ],
            max_tokens=1500,
            temperature=0.5,
        )
        mock = AsyncMock(return_value=_completion("Bien sûr"))
        with patch("services.providers.litellm.acompletion", mock):
            text = await SecondaryProvider(api_key="gsk_1").generate("llama-3.1-8b-instant", spec)

        assert text == "Bien sûr"
        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "groq/llama-3.1-8b-instant"
        assert kwargs["max_tokens"] == 1500
        assert kwargs["temperature"] == 0.5
        assert [m["role"] for m in kwargs["messages"]] == ["system", "user", "assistant", "user"]

    async def test_error_is_wrapped(self):
        mock = AsyncMock(side_effect=_VendorError("rate limit", 429))
        with patch("services.providers.litellm.acompletion", mock):
            with pytest.raises(ProviderError) as exc_info:
                await SecondaryProvider(api_key="k").generate("m", FallbackSpec(system_prompt="s"))

        assert exc_info.value.provider == "secondary"
        assert exc_info.value.status_code == 429
