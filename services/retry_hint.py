"""Retry-hint parsing for provider quota errors.

Providers tell us how long to back off in several incompatible ways.  All of
them are recognised here so the gateway's cooldown logic has exactly one
place to change when an upstream error format moves:

- Gemini REST details:   ``{"@type": "...RetryInfo", "retryDelay": "16s"}``
- Gemini SDK message:    ``... Please retry in 16.513s ...``
- Gemini JSON in text:   ``"retryDelay": "16s"``
- Gemini gRPC text:      ``retry_delay { seconds: 30 }``
- Groq / OpenAI message: ``Please try again in 7.2s`` / ``in 1m30.5s``
- HTTP header:           ``Retry-After: 20``

Fractional seconds round up.  Anything unrecognised yields *default*.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY = 60

_RETRY_IN_RE = re.compile(r"retry\s*(?:in|Delay[\"'\s:]*)\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
_GRPC_DELAY_RE = re.compile(r"retry_delay\s*\{\s*seconds:\s*(\d+)", re.IGNORECASE)
_TRY_AGAIN_RE = re.compile(
    r"try again in\s*(?:(\d+)h)?\s*(?:(\d+(?:\.\d+)?)m(?!s))?\s*(?:(\d+(?:\.\d+)?)s)?",
    re.IGNORECASE,
)
_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)")


def _seconds(value: float) -> int | None:
    seconds = math.ceil(value)
    return seconds if seconds > 0 else None


def _from_duration(value: Any) -> int | None:
    """Parse ``"16s"`` / ``"16.5s"`` / ``16`` / ``{"seconds": 16}``."""
    if isinstance(value, dict):
        value = value.get("seconds")
    if isinstance(value, (int, float)):
        return _seconds(float(value))
    if isinstance(value, str):
        match = _DURATION_RE.search(value)
        if match:
            return _seconds(float(match.group(1)))
    return None


def _details_of(error: Any) -> list[Any]:
    for attr in ("details", "errorDetails", "error_details"):
        details = getattr(error, attr, None)
        if isinstance(details, list) and details:
            return details
    return []


def _headers_of(error: Any) -> Any:
    headers = getattr(error, "headers", None)
    if headers:
        return headers
    response = getattr(error, "response", None)
    return getattr(response, "headers", None)


def _from_details(error: Any) -> int | None:
    for detail in _details_of(error):
        if not isinstance(detail, dict):
            continue
        delay = detail.get("retryDelay", detail.get("retry_delay"))
        if delay is not None:
            parsed = _from_duration(delay)
            if parsed:
                return parsed
    return None


def _from_headers(error: Any) -> int | None:
    headers = _headers_of(error)
    if not headers:
        return None
    try:
        raw = headers.get("retry-after") or headers.get("Retry-After")
    except AttributeError:
        return None
    if raw is None:
        return None
    try:
        return _seconds(float(raw))
    except (TypeError, ValueError):
        # HTTP-date form is not worth supporting for LLM vendors
        return None


def _from_message(message: str) -> int | None:
    if not message:
        return None

    match = _RETRY_IN_RE.search(message)
    if match:
        return _seconds(float(match.group(1)))

    match = _GRPC_DELAY_RE.search(message)
    if match:
        return _seconds(float(match.group(1)))

    match = _TRY_AGAIN_RE.search(message)
    if match and any(match.groups()):
        hours, minutes, seconds = match.groups()
        total = (
            float(hours or 0) * 3600
            + float(minutes or 0) * 60
            + float(seconds or 0)
        )
        return _seconds(total)

    return None


def parse_retry_delay(error: Any, default: int = DEFAULT_RETRY_DELAY) -> int:
    """Return the provider's suggested back-off in whole seconds.

    Args:
        error: The exception (or any object) raised by a provider call.
            Structured ``details`` and ``Retry-After`` headers win over
            free-form message text.
        default: Returned when no hint is found.
    """
    if error is None:
        return default

    for source in (_from_details, _from_headers):
        parsed = source(error)
        if parsed:
            return parsed

    message = getattr(error, "message", None)
    if not isinstance(message, str) or not message:
        message = str(error)
    parsed = _from_message(message)
    if parsed:
        return parsed

    cause = getattr(error, "__cause__", None) or getattr(error, "last_error", None)
    if cause is not None and cause is not error:
        return parse_retry_delay(cause, default)

    logger.debug("No retry hint in provider error, using default %ds", default)
    return default
