"""Conversation store — server-side memory for multi-turn tutoring chats.

Provides an abstract interface for conversation storage with an in-memory
implementation.  The relational store of the surrounding platform is out
of scope; the interface is what the tutor service depends on.
"""

from __future__ import annotations

import logging
import time
import uuid
from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from models.gateway import ChatMessage

logger = logging.getLogger(__name__)

MAX_TURN_CHARS = 8000
TITLE_CHARS = 50

# ── Data Models ──────────────────────────────────────────────


class ConversationTurn(BaseModel):
    """A single message in a conversation."""

    id: str = Field(default_factory=lambda: f"msg-{uuid.uuid4().hex[:12]}")
    role: str  # "user" or "assistant"
    content: str
    created_at: float = Field(default_factory=time.time)


class Conversation(BaseModel):
    """A student's conversation with the tutor."""

    id: str
    student_id: str
    title: str = ""
    turns: list[ConversationTurn] = Field(default_factory=list)
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    @classmethod
    def start(cls, student_id: str, first_message: str) -> Conversation:
        """New conversation titled after the first 50 chars of *first_message*."""
        title = first_message[:TITLE_CHARS]
        if len(first_message) > TITLE_CHARS:
            title += "..."
        return cls(id=generate_conversation_id(), student_id=student_id, title=title)

    def add_user_turn(self, message: str) -> ConversationTurn:
        """Record a user message."""
        return self._append("user", message)

    def add_assistant_turn(self, message: str) -> ConversationTurn:
        """Record an assistant response."""
        return self._append("assistant", message)

    def _append(self, role: str, content: str) -> ConversationTurn:
        turn = ConversationTurn(role=role, content=content[:MAX_TURN_CHARS])
        self.turns.append(turn)
        self.updated_at = time.time()
        return turn

    def recent_turns(self, n: int = 20) -> list[ConversationTurn]:
        """Return the last *n* turns."""
        return self.turns[-n:] if n > 0 else []

    def to_chat_messages(self, max_turns: int = 20) -> list[ChatMessage]:
        """Recent turns as provider-neutral messages."""
        return [
            ChatMessage(role=t.role, content=t.content)
            for t in self.recent_turns(max_turns)
        ]


# ── Abstract Interface ───────────────────────────────────────


class ConversationStore(ABC):
    """Abstract conversation store — implement for different backends."""

    @abstractmethod
    async def get(self, conversation_id: str) -> Conversation | None:
        """Retrieve a conversation by ID.  Returns None if not found."""
        ...

    @abstractmethod
    async def save(self, conversation: Conversation) -> None:
        """Persist a conversation (create or update)."""
        ...

    @abstractmethod
    async def delete(self, conversation_id: str) -> None:
        """Remove a conversation."""
        ...

    @abstractmethod
    async def list_for_student(self, student_id: str) -> list[Conversation]:
        """All conversations of a student, most recently updated first."""
        ...


# ── In-Memory Implementation ────────────────────────────────


class InMemoryConversationStore(ConversationStore):
    """In-memory store for single-instance deployments."""

    def __init__(self) -> None:
        self._store: dict[str, Conversation] = {}

    async def get(self, conversation_id: str) -> Conversation | None:
        return self._store.get(conversation_id)

    async def save(self, conversation: Conversation) -> None:
        self._store[conversation.id] = conversation

    async def delete(self, conversation_id: str) -> None:
        self._store.pop(conversation_id, None)

    async def list_for_student(self, student_id: str) -> list[Conversation]:
        convs = [c for c in self._store.values() if c.student_id == student_id]
        return sorted(convs, key=lambda c: c.updated_at, reverse=True)

    @property
    def size(self) -> int:
        """Number of conversations currently stored."""
        return len(self._store)


# ── Module-level Singleton ───────────────────────────────────

_store: ConversationStore | None = None


def get_conversation_store() -> ConversationStore:
    """Get the singleton conversation store instance."""
    global _store
    if _store is None:
        _store = InMemoryConversationStore()
        logger.info("Initialized InMemoryConversationStore")
    return _store


def generate_conversation_id() -> str:
    """Generate a new server-side conversation ID."""
    return f"conv-{uuid.uuid4().hex[:12]}"
