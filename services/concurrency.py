"""Global concurrency controls for LLM API calls and heavy endpoints.

Prevents overwhelming Gemini/Groq rate limits under load.
Uses asyncio.Semaphore to cap the number of *concurrent* outbound LLM
requests per worker process.

All middleware uses pure ASGI implementation (not BaseHTTPMiddleware).
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Coroutine

from starlette.types import ASGIApp, Receive, Scope, Send

from config.settings import get_settings

logger = logging.getLogger(__name__)

# ── Global LLM semaphore ─────────────────────────────────────
# Default: 10 concurrent LLM calls per worker (settings.max_concurrent_llm).
# Free-tier Gemini quotas are per-minute, so the semaphore plus natural
# latency keeps bursts from burning the whole quota at once.

_llm_semaphore: asyncio.Semaphore | None = None


def _get_semaphore() -> asyncio.Semaphore:
    """Lazy-init to ensure semaphore is bound to the running event loop."""
    global _llm_semaphore
    if _llm_semaphore is None:
        limit = get_settings().max_concurrent_llm
        _llm_semaphore = asyncio.Semaphore(limit)
        logger.info("LLM concurrency semaphore initialized (max=%d)", limit)
    return _llm_semaphore


async def rate_limited_llm_call(
    func: Callable[..., Coroutine[Any, Any, Any]],
    *args: Any,
    **kwargs: Any,
) -> Any:
    """Execute an async LLM function with concurrency limiting.

    Usage::

        result = await rate_limited_llm_call(litellm.acompletion, model=..., messages=...)
    """
    sem = _get_semaphore()
    async with sem:
        return await func(*args, **kwargs)


# ── Heavy endpoint concurrency middleware (pure ASGI) ─────────
# Limits concurrent requests to LLM-heavy endpoints.
# Requests that exceed the limit receive 503 instead of queuing forever.

_MAX_CONCURRENT_HEAVY = 15  # per worker
_heavy_semaphore: asyncio.Semaphore | None = None

_HEAVY_PREFIXES = (
    "/api/ai/chat",
    "/api/ai/generate/",
)
_HEAVY_SUFFIXES = (
    "/analyze",
    "/exercises",
)


def _is_heavy(path: str) -> bool:
    if path.startswith(_HEAVY_PREFIXES):
        return True
    return path.startswith("/api/ai/documents/") and path.endswith(_HEAVY_SUFFIXES)


def _get_heavy_semaphore() -> asyncio.Semaphore:
    global _heavy_semaphore
    if _heavy_semaphore is None:
        _heavy_semaphore = asyncio.Semaphore(_MAX_CONCURRENT_HEAVY)
        logger.info("Heavy endpoint semaphore initialized (max=%d)", _MAX_CONCURRENT_HEAVY)
    return _heavy_semaphore


class ConcurrencyLimitMiddleware:
    """Pure ASGI middleware — reject heavy requests when the worker is at capacity.

    Returns HTTP 503 with Retry-After header for overloaded endpoints.
    Lightweight endpoints (health, conversation listing) pass through.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")
        if not _is_heavy(path):
            await self.app(scope, receive, send)
            return

        sem = _get_heavy_semaphore()

        # Full semaphore: reject with 503 instead of queueing
        if sem.locked():
            logger.warning("Concurrency limit reached for %s — returning 503", path)
            body = json.dumps(
                {"detail": "Serveur occupé — trop de requêtes simultanées. Réessaie."}
            ).encode()
            await send({
                "type": "http.response.start",
                "status": 503,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"retry-after", b"5"),
                ],
            })
            await send({
                "type": "http.response.body",
                "body": body,
            })
            return

        async with sem:
            await self.app(scope, receive, send)
