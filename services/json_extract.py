"""Tolerant JSON extraction from free-form LLM output.

Models asked for "JSON only" still wrap it in code fences, add a sentence
before or after it, or emit LaTeX (``\\frac``, ``\\sqrt``) with single
backslashes inside string values.  :func:`extract_structured_result` never
raises: when nothing parses, the caller-supplied fallback literal is
returned instead, so an empty result is always well-formed.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterator

logger = logging.getLogger(__name__)

# The closing fence must start a line, so "```" inside a string value is kept
_CODE_BLOCK_RE = re.compile(r"```(?:json)?[ \t]*\n?([\s\S]*?)^[ \t]*```", re.MULTILINE)
_PLACEHOLDER = "\x00\x01"
_FAILED = object()


def fix_invalid_json_escapes(s: str) -> str:
    r"""Fix invalid JSON escape sequences produced by LLMs.

    LLMs frequently emit LaTeX notation like ``\(x^2\)`` or ``\sqrt{}``
    inside JSON strings.  Only ``\"``, ``\\``, ``\/``, ``\b``, ``\f``,
    ``\n``, ``\r``, ``\t`` and ``\uXXXX`` are legal escapes, so lone
    backslashes before anything else are doubled.

    ``\f``, ``\b``, ``\n``, ``\r``, ``\t`` followed by 2+ letters are
    LaTeX commands (``\frac``, ``\begin``, ``\nabla``, ``\right``,
    ``\times``), not control characters, and are doubled as well.
    """
    # Protect valid \\ so the second backslash is not re-escaped
    s = s.replace("\\\\", _PLACEHOLDER)
    s = re.sub(r'\\(?!["\\/bfnrtu])', r"\\\\", s)
    s = re.sub(r"\\([bfnrt])([a-zA-Z]{2,})", r"\\\\\1\2", s)
    return s.replace(_PLACEHOLDER, "\\\\")


def _try_parse(candidate: str) -> Any:
    """Parse *candidate* as-is, then once more after the repair pass.

    Returns ``_FAILED`` when both attempts fail, since ``null`` is a valid
    result.  ``strict=False`` lets raw control characters (unescaped
    newlines, tabs) through inside strings.
    """
    if not candidate:
        return _FAILED
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(fix_invalid_json_escapes(candidate), strict=False)
    except json.JSONDecodeError:
        return _FAILED


def iter_balanced_objects(text: str) -> Iterator[str]:
    """Yield every balanced top-level ``{...}`` span in *text*, in order.

    Braces inside double-quoted strings are ignored; a backslash escapes
    the next character.
    """
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if escaped:
            escaped = False
            continue
        if ch == "\\":
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start != -1:
                yield text[start : i + 1]
                start = -1


def extract_structured_result(raw_text: str | None, fallback_literal: str = "{}") -> Any:
    """Recover a JSON value from model output, or the parsed fallback.

    Order of preference:
        1. the interior of a fenced code block;
        2. the first balanced top-level ``{...}`` span that parses;
        3. the trimmed whole text.

    Args:
        raw_text: Model output, possibly wrapped in prose or fences.
        fallback_literal: JSON text returned (parsed) when nothing else
            parses.  Must itself be valid JSON.
    """
    text = raw_text or ""

    match = _CODE_BLOCK_RE.search(text)
    if match:
        result = _try_parse(match.group(1).strip())
        if result is not _FAILED:
            return result

    for candidate in iter_balanced_objects(text):
        result = _try_parse(candidate)
        if result is not _FAILED:
            return result

    result = _try_parse(text.strip())
    if result is not _FAILED:
        return result

    logger.warning("JSON extraction failed for text: %s", text[:300])
    return json.loads(fallback_literal)
