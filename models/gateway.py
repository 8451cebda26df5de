"""Provider gateway data contracts.

- ``ProviderName``: the closed set of provider identities.
- ``FallbackSpec``: the secondary-provider representation of a request.
- ``RemoteFile``: handle returned by the primary provider's file store.
- ``RawDocument`` / ``DocumentText``: slices of a document handed over by
  the document collaborator.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class ProviderName(str, Enum):
    """Provider identities known to the gateway."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class ChatMessage(BaseModel):
    """One turn of provider-neutral message history."""

    role: Literal["user", "assistant", "model", "system"] = "user"
    content: str


class FallbackSpec(BaseModel):
    """Everything the secondary provider needs to re-issue a request."""

    system_prompt: str
    messages: list[ChatMessage] = Field(default_factory=list)
    max_tokens: int = Field(default=2000, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)


@dataclass(frozen=True)
class RemoteFile:
    """Opaque reference to a file accepted by the primary provider."""

    uri: str
    mime_type: str


@dataclass(frozen=True)
class RawDocument:
    """Binary payload of a stored document."""

    data: bytes
    mime_type: str
    name: str


@dataclass(frozen=True)
class DocumentText:
    """Extracted text of a stored document (may be empty)."""

    name: str
    content: str
