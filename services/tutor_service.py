"""Tutor service — the student-facing AI operations.

Each operation builds two views of the same request (a Gemini request
builder and a :class:`FallbackSpec`) and hands them to the
:class:`ProviderGateway`.  On total provider failure every operation
degrades to a displayable result: a friendly French message, an empty
exercise list, or a ``None`` mind map.  Nothing here raises provider
errors to the API layer.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from config.llm_config import GenerationConfig
from config.prompts import tutor as prompts
from config.settings import Settings, get_settings
from errors import ConversationNotFoundError, ProvidersExhaustedError
from models.gateway import ChatMessage, FallbackSpec, RemoteFile
from models.tutor import (
    Difficulty,
    DocumentContentOut,
    Exercise,
    ExerciseSet,
    MessageOut,
    MindMapNode,
    MindMapResponse,
    SendMessageRequest,
    SendMessageResponse,
)
from services.conversation_store import (
    Conversation,
    ConversationStore,
    ConversationTurn,
    get_conversation_store,
)
from services.documents import LocalDocumentStore, StoredDocument, get_document_store
from services.gateway import PrimaryRequest, ProviderGateway
from services.providers import PrimaryProvider

logger = logging.getLogger(__name__)

MAX_KEY_POINTS = 10
_BULLETS = ("-", "•", "*")

_BRANCH_SUGGESTIONS: dict[str, list[str]] = {
    "SCIENCES": ["Aide-moi en maths", "Explique-moi un concept de physique", "Quiz SVT"],
    "LETTRES": ["Aide-moi en dissertation", "Expliquer un texte", "Vocabulaire arabe"],
    "ECONOMIE": ["Aide en économie", "Exercice de gestion", "Concepts économiques"],
}
_DEFAULT_SUGGESTIONS = ["Besoin d'aide?", "Faire un résumé", "Pratiquer des exercices"]


def generate_suggestions(user_message: str, branch: str | None = None) -> list[str]:
    """Quick-reply suggestions from message keywords, else from the branch."""
    lower = user_message.lower()

    if "exercice" in lower or "problème" in lower:
        return [
            "Explique-moi la méthode",
            "Donne-moi un exercice similaire",
            "Je ne comprends pas cette étape",
        ]
    if "stress" in lower or "peur" in lower or "anxieux" in lower:
        return [
            "Techniques de relaxation",
            "Comment mieux gérer mon temps?",
            "Raconte-moi une histoire motivante",
        ]
    if "révision" in lower or "planning" in lower:
        return [
            "Crée-moi un planning de révision",
            "Quelles matières prioriser?",
            "Combien d'heures par jour?",
        ]
    return list(_BRANCH_SUGGESTIONS.get(branch or "", _DEFAULT_SUGGESTIONS))


def extract_key_points(summary: str) -> list[str]:
    """Bullet lines of a Markdown summary, at most ten."""
    points: list[str] = []
    for line in summary.splitlines():
        stripped = line.strip()
        if stripped.startswith(_BULLETS):
            points.append(stripped[1:].strip())
    return points[:MAX_KEY_POINTS]


def to_exercise_set(parsed: Any) -> ExerciseSet:
    """Validate model output item by item; malformed items are dropped."""
    if not isinstance(parsed, dict) or not isinstance(parsed.get("exercises"), list):
        keys = list(parsed) if isinstance(parsed, dict) else type(parsed).__name__
        logger.warning("Parsed exercises but invalid structure: %s", keys)
        return ExerciseSet()

    exercises: list[Exercise] = []
    for item in parsed["exercises"]:
        try:
            exercises.append(Exercise.model_validate(item))
        except ValidationError as exc:
            logger.warning("Dropped malformed exercise: %s", exc.errors()[:1])
    return ExerciseSet(exercises=exercises)


def to_mind_map(parsed: Any) -> MindMapNode | None:
    node = parsed.get("mindMap") if isinstance(parsed, dict) else None
    if not node:
        return None
    try:
        return MindMapNode.model_validate(node)
    except ValidationError as exc:
        logger.warning("Mind map has invalid structure: %s", exc.errors()[:1])
        return None


def _message_out(turn: ConversationTurn) -> MessageOut:
    return MessageOut(id=turn.id, role=turn.role, content=turn.content, created_at=turn.created_at)


class TutorService:
    """Chat tutoring and content generation on top of the provider gateway."""

    def __init__(
        self,
        gateway: ProviderGateway,
        primary: PrimaryProvider,
        conversations: ConversationStore,
        documents: LocalDocumentStore,
        settings: Settings | None = None,
    ) -> None:
        self.gateway = gateway
        self.primary = primary
        self.conversations = conversations
        self.documents = documents
        self.settings = settings or get_settings()

    async def _complete(self, primary_request: PrimaryRequest, fallback: FallbackSpec) -> str:
        return await self.gateway.complete(
            primary_request,
            fallback,
            deadline=self.settings.request_deadline_seconds,
        )

    async def _generate_text(
        self,
        prompt: str,
        system_prompt: str,
        config: GenerationConfig,
        empty_text: str,
    ) -> str:
        """Single-prompt generation shared by summaries, exercises, mind maps."""

        async def primary_request(model: str) -> str:
            text = await self.primary.generate(model, prompt=prompt, config=config)
            return text or empty_text

        fallback = FallbackSpec(
            system_prompt=system_prompt,
            messages=[ChatMessage(role="user", content=prompt)],
            max_tokens=config.max_tokens,
            temperature=config.temperature if config.temperature is not None else 0.7,
        )
        return await self._complete(primary_request, fallback)

    # ── Chat ─────────────────────────────────────────────────

    async def _get_owned_conversation(self, conversation_id: str, student_id: str) -> Conversation:
        conversation = await self.conversations.get(conversation_id)
        if conversation is None or conversation.student_id != student_id:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def _build_document_context(
        self,
        student_id: str,
        document_ids: list[str],
    ) -> tuple[str, list[RemoteFile]]:
        """Inline extracted text; upload documents without usable text.

        Returns the text block to append to the message and the uploaded
        file handles for the multimodal request.
        """
        docs = self.documents.for_student(student_id)
        limit = self.settings.document_text_limit
        context = ""
        files: list[RemoteFile] = []

        for doc_id in document_ids:
            try:
                doc = await docs.fetch_content(doc_id)
                if doc is None:
                    logger.warning("Attached document not found: %s", doc_id)
                    continue

                text = doc.content
                if text and len(text.strip()) > self.settings.min_document_text:
                    if len(text) > limit:
                        text = text[:limit] + "\n... [document tronqué]"
                    context += f'\n\n📄 Document "{doc.name}":\n{text}'
                    logger.info("Text extracted: %s (%d chars)", doc.name, len(doc.content))
                    continue

                logger.info("No text in %s, uploading to the primary provider...", doc.name)
                remote = await self.gateway.upload_and_cache(doc_id, docs)
                if remote is not None:
                    files.append(remote)
                else:
                    context += f'\n\n📄 Document "{doc.name}": [fichier non lisible]'
            except Exception as exc:
                logger.warning("Failed to process document %s for chat: %s", doc_id, exc)

        return context, files

    async def send_message(self, student_id: str, request: SendMessageRequest) -> SendMessageResponse:
        """Run one chat turn; always returns an assistant message."""
        if request.conversation_id:
            conversation = await self._get_owned_conversation(request.conversation_id, student_id)
        else:
            conversation = Conversation.start(student_id, request.content)

        history = conversation.to_chat_messages(self.settings.history_turns)
        student = request.student

        document_context, files = ("", [])
        if request.document_ids:
            document_context, files = await self._build_document_context(
                student_id, request.document_ids
            )

        message_text = request.content
        if document_context:
            message_text += (
                "\n\n--- DOCUMENTS JOINTS ---" + document_context + "\n--- FIN DES DOCUMENTS ---"
            )
        if document_context or files:
            message_text += "\n\n" + prompts.DOCUMENTS_INSTRUCTION

        # The original text is stored, not the document-enriched one
        conversation.add_user_turn(request.content)
        await self.conversations.save(conversation)

        system_prompt = prompts.build_tutor_system_prompt(
            student.first_name, student.branch, student.school, student.stress_level
        )
        config = GenerationConfig(max_tokens=2000, temperature=0.7)

        async def primary_request(model: str) -> str:
            if files:
                # Multimodal requests go as a single prompt with inline history
                lines = [
                    f"{'Assistant' if m.role == 'assistant' else 'Élève'}: {m.content}"
                    for m in history
                ]
                full_prompt = system_prompt + "\n\n"
                if lines:
                    full_prompt += "Historique:\n" + "\n".join(lines) + "\n\n"
                full_prompt += f"Élève: {message_text}"
                text = await self.primary.generate(
                    model, prompt=full_prompt, files=files, config=config
                )
            else:
                text = await self.primary.generate(
                    model,
                    prompt=message_text,
                    history=history,
                    system_prompt=system_prompt,
                    config=config,
                )
            return text or prompts.EMPTY_CHAT_RESPONSE

        fallback = FallbackSpec(
            system_prompt=system_prompt,
            messages=[*history, ChatMessage(role="user", content=message_text)],
            max_tokens=config.max_tokens,
            temperature=0.7,
        )

        try:
            content = await self._complete(primary_request, fallback)
            suggestions = generate_suggestions(request.content, student.branch)
        except ProvidersExhaustedError as exc:
            logger.error("AI providers exhausted for conversation %s: %s", conversation.id, exc)
            if document_context:
                snippet = document_context[:500].replace("\n", " ").strip()
                content = prompts.build_quota_message_with_snippet(snippet)
            else:
                content = prompts.QUOTA_MESSAGE
            suggestions = list(prompts.RETRY_SUGGESTIONS)
        except Exception:
            logger.exception("Chat turn failed for conversation %s", conversation.id)
            content = prompts.TECHNICAL_ERROR_MESSAGE
            suggestions = list(prompts.RETRY_SUGGESTIONS)

        turn = conversation.add_assistant_turn(content)
        await self.conversations.save(conversation)

        return SendMessageResponse(
            conversation_id=conversation.id,
            message=_message_out(turn),
            suggestions=suggestions,
        )

    async def list_conversations(self, student_id: str) -> list[Conversation]:
        return await self.conversations.list_for_student(student_id)

    async def get_conversation(self, conversation_id: str, student_id: str) -> Conversation:
        return await self._get_owned_conversation(conversation_id, student_id)

    async def delete_conversation(self, conversation_id: str, student_id: str) -> None:
        await self._get_owned_conversation(conversation_id, student_id)
        await self.conversations.delete(conversation_id)

    # ── Content generation ───────────────────────────────────

    async def generate_summary(self, content: str, branch: str) -> str:
        try:
            return await self._generate_text(
                prompts.build_summary_prompt(content, branch),
                prompts.SUMMARY_SYSTEM_PROMPT,
                GenerationConfig(max_tokens=2000, temperature=0.5),
                "Impossible de générer le résumé.",
            )
        except ProvidersExhaustedError as exc:
            logger.error("generate_summary failed: %s", exc)
            return prompts.SUMMARY_ERROR_MESSAGE

    async def generate_exercises(
        self,
        topic: str,
        difficulty: Difficulty | str = Difficulty.MEDIUM,
        count: int = 3,
    ) -> ExerciseSet:
        """Exercise set for *topic*; an empty set on failure."""
        level = Difficulty(difficulty).value
        try:
            text = await self._generate_text(
                prompts.build_exercises_prompt(topic, level, count),
                prompts.EXERCISES_SYSTEM_PROMPT,
                GenerationConfig(max_tokens=8000, temperature=0.7, json_mode=True),
                '{"exercises": []}',
            )
        except ProvidersExhaustedError as exc:
            logger.error("generate_exercises failed: %s", exc)
            return ExerciseSet()

        logger.debug("Raw exercises response (%d chars): %s", len(text), text[:200])
        result = to_exercise_set(
            self.gateway.extract_structured_result(text, '{"exercises": []}')
        )
        logger.info("Generated %d exercises (%s)", len(result.exercises), level)
        return result

    async def generate_mind_map(self, topic: str) -> MindMapResponse:
        try:
            text = await self._generate_text(
                prompts.build_mind_map_prompt(topic),
                prompts.MIND_MAP_SYSTEM_PROMPT,
                GenerationConfig(max_tokens=1500, temperature=0.6),
                '{"mindMap": null}',
            )
        except ProvidersExhaustedError as exc:
            logger.error("generate_mind_map failed: %s", exc)
            return MindMapResponse()
        parsed = self.gateway.extract_structured_result(text, '{"mindMap": null}')
        return MindMapResponse(mind_map=to_mind_map(parsed))

    async def generate_course_support(
        self,
        subject_name: str,
        chapter_title: str,
        branch: str,
    ) -> str:
        try:
            return await self._generate_text(
                prompts.build_course_support_prompt(subject_name, chapter_title, branch),
                prompts.build_course_support_system_prompt(branch),
                GenerationConfig(max_tokens=4000, temperature=0.5),
                "Impossible de générer le support de cours.",
            )
        except ProvidersExhaustedError as exc:
            logger.error("generate_course_support failed: %s", exc)
            return prompts.COURSE_SUPPORT_ERROR_MESSAGE

    # ── Documents ────────────────────────────────────────────

    async def get_document_content(self, document_id: str, student_id: str) -> DocumentContentOut:
        doc = self.documents.get(document_id, student_id)
        content = await self.documents.extract_content(document_id, student_id)
        return DocumentContentOut(name=doc.name, content=content)

    async def analyze_document(
        self,
        document_id: str,
        student_id: str,
        branch: str,
    ) -> StoredDocument:
        """Summary, key points and mind map of a document, stored on it."""
        doc = self.documents.get(document_id, student_id)
        content = await self.documents.extract_content(document_id, student_id)
        if not content:
            content = prompts.build_document_topic_prompt(doc.name, doc.title, doc.mime_type, branch)

        try:
            summary = await self.generate_summary(content, branch)
            mind_map = (await self.generate_mind_map(doc.title)).mind_map
            return self.documents.update(
                document_id,
                summary=summary or "Résumé non disponible.",
                key_points=extract_key_points(summary or ""),
                mind_map=mind_map.model_dump() if mind_map else None,
            )
        except Exception:
            logger.exception("analyze_document failed for %s", document_id)
            return self.documents.update(
                document_id,
                summary=prompts.ANALYSIS_ERROR_MESSAGE,
                key_points=[],
            )

    async def generate_exercises_from_document(
        self,
        document_id: str,
        student_id: str,
        difficulty: Difficulty | str = Difficulty.MEDIUM,
    ) -> ExerciseSet:
        doc = self.documents.get(document_id, student_id)
        content = await self.documents.extract_content(document_id, student_id)
        topic = f"{doc.title} - Contenu: {content[:500]}" if content else doc.title
        return await self.generate_exercises(topic, difficulty, 5)

    async def delete_document(self, document_id: str, student_id: str) -> None:
        await self.documents.delete(document_id, student_id)
        self.gateway.invalidate_upload(document_id)


# ── Module-level Singleton ───────────────────────────────────

_service: TutorService | None = None


def get_tutor_service() -> TutorService:
    """Return the process-wide TutorService (create if needed)."""
    global _service
    if _service is None:
        settings = get_settings()
        primary = PrimaryProvider.from_settings(settings)
        _service = TutorService(
            gateway=ProviderGateway.from_settings(settings, primary=primary),
            primary=primary,
            conversations=get_conversation_store(),
            documents=get_document_store(),
            settings=settings,
        )
    return _service
