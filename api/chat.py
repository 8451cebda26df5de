"""Tutor chat API — chat turns and conversation history.

Endpoints:
- ``POST   /api/ai/chat``                     — one chat turn
- ``GET    /api/ai/conversations``            — the student's conversations
- ``GET    /api/ai/conversations/{id}``       — one conversation with messages
- ``DELETE /api/ai/conversations/{id}``       — delete a conversation
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from api.deps import get_student_id
from models.tutor import (
    ConversationOut,
    MessageOut,
    SendMessageRequest,
    SendMessageResponse,
)
from services.conversation_store import Conversation
from services.tutor_service import TutorService, get_tutor_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["chat"])


def _conversation_out(conversation: Conversation, with_messages: bool = True) -> ConversationOut:
    messages = (
        [
            MessageOut(id=t.id, role=t.role, content=t.content, created_at=t.created_at)
            for t in conversation.turns
        ]
        if with_messages
        else []
    )
    return ConversationOut(
        id=conversation.id,
        title=conversation.title,
        messages=messages,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
    )


@router.post("/chat", response_model=SendMessageResponse)
async def send_message(
    req: SendMessageRequest,
    student_id: str = Depends(get_student_id),
    service: TutorService = Depends(get_tutor_service),
):
    """Send a message to the tutor; always answers with an assistant message."""
    logger.info(
        "Chat turn: student=%s conversation=%s documents=%d",
        student_id,
        req.conversation_id or "(new)",
        len(req.document_ids),
    )
    return await service.send_message(student_id, req)


@router.get("/conversations", response_model=list[ConversationOut])
async def list_conversations(
    student_id: str = Depends(get_student_id),
    service: TutorService = Depends(get_tutor_service),
):
    conversations = await service.list_conversations(student_id)
    return [_conversation_out(c, with_messages=False) for c in conversations]


@router.get("/conversations/{conversation_id}", response_model=ConversationOut)
async def get_conversation(
    conversation_id: str,
    student_id: str = Depends(get_student_id),
    service: TutorService = Depends(get_tutor_service),
):
    return _conversation_out(await service.get_conversation(conversation_id, student_id))


@router.delete("/conversations/{conversation_id}", status_code=204)
async def delete_conversation(
    conversation_id: str,
    student_id: str = Depends(get_student_id),
    service: TutorService = Depends(get_tutor_service),
):
    await service.delete_conversation(conversation_id, student_id)
