"""Shared route dependencies."""

from __future__ import annotations

from fastapi import Header, HTTPException


def _normalize_student_id(raw: str | None) -> str:
    """Normalize a student id from headers to avoid null-like values."""
    if raw is None:
        return ""
    value = str(raw).strip()
    if value.lower() in {"none", "null", "undefined"}:
        return ""
    return value


async def get_student_id(x_student_id: str | None = Header(default=None)) -> str:
    """Student identity from ``X-Student-Id``; 401 when absent."""
    student_id = _normalize_student_id(x_student_id)
    if not student_id:
        raise HTTPException(status_code=401, detail="Utilisateur non authentifié")
    return student_id
