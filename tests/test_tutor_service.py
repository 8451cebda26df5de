"""Tests for services/tutor_service.py — chat turns, generation and degradation."""

from __future__ import annotations

import json

import pytest

from config.prompts import tutor as prompts
from config.settings import Settings
from errors import ConversationNotFoundError, DocumentNotFoundError, ProviderError
from models.gateway import ProviderName
from models.tutor import Difficulty, SendMessageRequest, StudentContext
from services.conversation_store import Conversation, InMemoryConversationStore
from services.documents import LocalDocumentStore
from services.tutor_service import (
    TutorService,
    extract_key_points,
    generate_suggestions,
    to_exercise_set,
)
from tests.stubs import StubPrimary, StubSecondary, StubUploader, rate_limited

TXT = "text/plain"


def _auth_error() -> ProviderError:
    return ProviderError("primary", "API key not valid", status_code=400)


@pytest.fixture
def documents(tmp_path) -> LocalDocumentStore:
    return LocalDocumentStore(uploads_dir=tmp_path / "uploads")


@pytest.fixture
def conversations() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def make_service(make_gateway, conversations, documents):
    def _make(primary: StubPrimary | None = None, **gateway_overrides) -> TutorService:
        return TutorService(
            gateway=make_gateway(**gateway_overrides),
            primary=primary or StubPrimary(),
            conversations=conversations,
            documents=documents,
            settings=Settings(request_deadline_seconds=None),
        )

    return _make


def _request(content: str = "Explique-moi les limites", **kwargs) -> SendMessageRequest:
    return SendMessageRequest(content=content, **kwargs)


# ── send_message ─────────────────────────────────────────────


class TestSendMessage:
    async def test_new_conversation(self, make_service, conversations):
        primary = StubPrimary("Une limite décrit...")
        service = make_service(primary)

        resp = await service.send_message(
            "stu-1",
            _request("J'ai un exercice sur les limites", student=StudentContext(first_name="Amira", stress_level=9)),
        )

        assert resp.message.role == "assistant"
        assert resp.message.content == "Une limite décrit..."
        assert resp.suggestions == [
            "Explique-moi la méthode",
            "Donne-moi un exercice similaire",
            "Je ne comprends pas cette étape",
        ]
        conv = await conversations.get(resp.conversation_id)
        assert conv.student_id == "stu-1"
        assert conv.title == "J'ai un exercice sur les limites"
        assert [t.role for t in conv.turns] == ["user", "assistant"]

        call = primary.calls[0]
        assert call["prompt"] == "J'ai un exercice sur les limites"
        assert call["history"] == []
        assert "Amira" in call["system_prompt"]
        assert "très stressé" in call["system_prompt"]

    async def test_history_is_prior_turns_only(self, make_service, conversations):
        primary = StubPrimary("r1", "r2")
        service = make_service(primary)

        first = await service.send_message("stu-1", _request("Bonjour"))
        await service.send_message("stu-1", _request("Et ensuite?", conversation_id=first.conversation_id))

        history = primary.calls[1]["history"]
        assert [(m.role, m.content) for m in history] == [("user", "Bonjour"), ("assistant", "r1")]
        conv = await conversations.get(first.conversation_id)
        assert len(conv.turns) == 4

    async def test_unknown_conversation(self, make_service):
        service = make_service()
        with pytest.raises(ConversationNotFoundError):
            await service.send_message("stu-1", _request(conversation_id="conv-missing"))

    async def test_foreign_conversation(self, make_service, conversations):
        await conversations.save(Conversation(id="conv-x", student_id="stu-2"))
        service = make_service()
        with pytest.raises(ConversationNotFoundError):
            await service.send_message("stu-1", _request(conversation_id="conv-x"))

    async def test_fallback_receives_history_and_message(self, make_service, secondary):
        service = make_service(StubPrimary(_auth_error()))

        resp = await service.send_message("stu-1", _request("Aide-moi"))

        assert resp.message.content == "secondary answer"
        spec = secondary.calls[0][1]
        assert spec.messages[-1].content == "Aide-moi"
        assert "BacTunis" in spec.system_prompt
        assert spec.max_tokens == 2000

    async def test_request_deadline_leaves_room_for_fallback(
        self, make_gateway, conversations, documents, secondary
    ):
        primary = StubPrimary(rate_limited())
        gateway = make_gateway()
        service = TutorService(
            gateway=gateway,
            primary=primary,
            conversations=conversations,
            documents=documents,
            settings=Settings(request_deadline_seconds=10),
        )

        resp = await service.send_message("stu-1", _request("Aide-moi"))

        assert resp.message.content == "secondary answer"
        assert len(primary.calls) == 1
        assert not gateway.is_available(ProviderName.PRIMARY)

    async def test_all_providers_exhausted_gives_quota_message(self, make_service, conversations):
        service = make_service(
            StubPrimary(_auth_error()),
            secondary=StubSecondary(ProviderError("secondary", "down", status_code=401)),
        )

        resp = await service.send_message("stu-1", _request("Salut"))

        assert resp.message.content == prompts.QUOTA_MESSAGE
        assert resp.suggestions == ["Réessayer", "Poser une autre question"]
        conv = await conversations.get(resp.conversation_id)
        assert conv.turns[-1].content == prompts.QUOTA_MESSAGE

    async def test_unexpected_error_gives_technical_message(self, make_service):
        service = make_service()

        async def broken(*args, **kwargs):
            raise RuntimeError("bug")

        service.gateway.complete = broken
        resp = await service.send_message("stu-1", _request("Salut"))

        assert resp.message.content == prompts.TECHNICAL_ERROR_MESSAGE


class TestSendMessageWithDocuments:
    async def test_text_document_is_inlined(self, make_service, documents, conversations):
        doc = await documents.save("stu-1", "limites.txt", TXT, ("Théorème des gendarmes. " * 5).encode())
        primary = StubPrimary("Voici l'analyse")
        service = make_service(primary)

        resp = await service.send_message("stu-1", _request("Résume ce cours", document_ids=[doc.id]))

        prompt = primary.calls[0]["prompt"]
        assert prompt.startswith("Résume ce cours")
        assert '📄 Document "limites.txt"' in prompt
        assert "Théorème des gendarmes." in prompt
        assert prompts.DOCUMENTS_INSTRUCTION in prompt
        assert primary.calls[0]["files"] == []
        conv = await conversations.get(resp.conversation_id)
        assert conv.turns[0].content == "Résume ce cours"

    async def test_long_document_is_truncated(self, make_service, documents):
        doc = await documents.save("stu-1", "long.txt", TXT, b"a" * 6000)
        primary = StubPrimary("ok")
        service = make_service(primary)

        await service.send_message("stu-1", _request("Lis", document_ids=[doc.id]))

        prompt = primary.calls[0]["prompt"]
        assert "a" * 5000 + "\n... [document tronqué]" in prompt
        assert "a" * 5001 not in prompt

    async def test_document_without_text_is_uploaded(self, make_service, documents):
        doc = await documents.save("stu-1", "photo.png", "image/png", b"\x89PNG")
        uploader = StubUploader()
        primary = StubPrimary("Je vois une figure")
        service = make_service(primary, uploader=uploader)

        await service.send_message("stu-1", _request("Que montre l'image?", document_ids=[doc.id]))

        call = primary.calls[0]
        assert len(uploader.calls) == 1
        assert [f.uri for f in call["files"]] == ["files/1"]
        assert call["prompt"].startswith(call["system_prompt"])
        assert "Élève: Que montre l'image?" in call["prompt"]

    async def test_uploaded_document_reused_across_turns(self, make_service, documents):
        doc = await documents.save("stu-1", "photo.png", "image/png", b"\x89PNG")
        uploader = StubUploader()
        service = make_service(StubPrimary("ok"), uploader=uploader)

        first = await service.send_message("stu-1", _request("Q1", document_ids=[doc.id]))
        await service.send_message(
            "stu-1", _request("Q2", conversation_id=first.conversation_id, document_ids=[doc.id])
        )

        assert len(uploader.calls) == 1

    async def test_failed_upload_marks_document_unreadable(self, make_service, documents):
        doc = await documents.save("stu-1", "photo.png", "image/png", b"\x89PNG")
        primary = StubPrimary("ok")
        service = make_service(primary, uploader=StubUploader(fail=True))

        await service.send_message("stu-1", _request("Regarde", document_ids=[doc.id]))

        assert '📄 Document "photo.png": [fichier non lisible]' in primary.calls[0]["prompt"]
        assert primary.calls[0]["files"] == []

    async def test_missing_document_is_skipped(self, make_service):
        primary = StubPrimary("ok")
        service = make_service(primary)

        await service.send_message("stu-1", _request("Salut", document_ids=["doc-missing"]))

        assert primary.calls[0]["prompt"] == "Salut"

    async def test_quota_message_includes_document_snippet(self, make_service, documents):
        doc = await documents.save("stu-1", "cours.txt", TXT, ("Les intégrales définies. " * 10).encode())
        service = make_service(
            StubPrimary(_auth_error()),
            secondary=StubSecondary(ProviderError("secondary", "down", status_code=401)),
        )

        resp = await service.send_message("stu-1", _request("Résume", document_ids=[doc.id]))

        assert "Les intégrales définies." in resp.message.content
        assert "quota dépassé" in resp.message.content


# ── Content generation ───────────────────────────────────────


class TestGeneration:
    async def test_summary(self, make_service):
        primary = StubPrimary("## Résumé\n- point")
        service = make_service(primary)

        assert await service.generate_summary("Les suites", "SCIENCES") == "## Résumé\n- point"
        assert "filière SCIENCES" in primary.calls[0]["prompt"]
        assert primary.calls[0]["config"].temperature == 0.5

    async def test_summary_failure_is_degraded(self, make_service):
        service = make_service(StubPrimary(_auth_error()), secondary=None)
        assert await service.generate_summary("x", "SCIENCES") == prompts.SUMMARY_ERROR_MESSAGE

    async def test_exercises_drop_malformed_items(self, make_service):
        payload = {
            "exercises": [
                {"question": "Calculer $\\lim_{x \\to 0} \\frac{\\sin x}{x}$", "type": "OPEN", "answer": "1"},
                {"type": "QCM"},
            ]
        }
        primary = StubPrimary("Voici:\n```json\n" + json.dumps(payload) + "\n```")
        service = make_service(primary)

        result = await service.generate_exercises("Limites", Difficulty.HARD, 3)

        assert len(result.exercises) == 1
        assert result.exercises[0].answer == "1"
        config = primary.calls[0]["config"]
        assert config.json_mode is True
        assert config.max_tokens == 8000
        assert "NIVEAU DIFFICILE" in primary.calls[0]["prompt"]

    async def test_exercise_count_capped_by_difficulty(self, make_service):
        primary = StubPrimary('{"exercises": []}')
        service = make_service(primary)

        await service.generate_exercises("Suites", "EASY", 10)

        assert "Génère 3 questions" in primary.calls[0]["prompt"]

    async def test_exercises_unparseable_output_is_empty_set(self, make_service):
        service = make_service(StubPrimary("Je ne peux pas générer d'exercices."))
        result = await service.generate_exercises("Suites")
        assert result.exercises == []

    async def test_exercises_failure_is_empty_set(self, make_service):
        service = make_service(StubPrimary(_auth_error()), secondary=None)
        result = await service.generate_exercises("Suites")
        assert result.exercises == []

    async def test_mind_map(self, make_service):
        raw = '{"mindMap": {"id": "root", "label": "Suites", "children": [{"id": 1, "label": "Arithmétiques"}]}}'
        service = make_service(StubPrimary(raw))

        result = await service.generate_mind_map("Suites")

        assert result.mind_map.label == "Suites"
        assert result.mind_map.children[0].id == "1"

    async def test_mind_map_invalid_structure_is_none(self, make_service):
        service = make_service(StubPrimary('{"mindMap": {"children": "oops"}}'))
        assert (await service.generate_mind_map("Suites")).mind_map is None

    async def test_mind_map_failure_is_none(self, make_service):
        service = make_service(StubPrimary(_auth_error()), secondary=None)
        assert (await service.generate_mind_map("Suites")).mind_map is None

    async def test_course_support(self, make_service):
        primary = StubPrimary("## 1. Introduction")
        service = make_service(primary)

        text = await service.generate_course_support("Mathématiques", "Les limites", "SCIENCES")

        assert text == "## 1. Introduction"
        assert "**Chapitre** : Les limites" in primary.calls[0]["prompt"]

    async def test_course_support_failure(self, make_service):
        service = make_service(StubPrimary(_auth_error()), secondary=None)
        text = await service.generate_course_support("Maths", "Limites", "SCIENCES")
        assert text == prompts.COURSE_SUPPORT_ERROR_MESSAGE


# ── Documents ────────────────────────────────────────────────


class TestDocuments:
    async def test_analyze_document(self, make_service, documents):
        doc = await documents.save("stu-1", "Les suites.txt", TXT, b"Une suite est une fonction de N dans R.")
        summary = "## Résumé\n- Définition\n• Monotonie\n* Convergence\nTexte libre"
        mind_map = '{"mindMap": {"id": "root", "label": "Les suites", "children": []}}'
        primary = StubPrimary(summary, mind_map)
        service = make_service(primary)

        result = await service.analyze_document(doc.id, "stu-1", "SCIENCES")

        assert result.summary == summary
        assert result.key_points == ["Définition", "Monotonie", "Convergence"]
        assert result.mind_map["label"] == "Les suites"
        assert "Une suite est une fonction" in primary.calls[0]["prompt"]
        assert '"Les suites"' in primary.calls[1]["prompt"]
        assert documents.get(doc.id).key_points == result.key_points

    async def test_analyze_document_without_text_uses_topic(self, make_service, documents):
        doc = await documents.save("stu-1", "schema.png", "image/png", b"\x89PNG")
        primary = StubPrimary("- point", '{"mindMap": null}')
        service = make_service(primary)

        result = await service.analyze_document(doc.id, "stu-1", "LETTRES")

        assert 'Ce document traite du sujet "schema"' in primary.calls[0]["prompt"]
        assert result.mind_map is None

    async def test_analyze_foreign_document(self, make_service, documents):
        doc = await documents.save("stu-2", "a.txt", TXT, b"a")
        service = make_service()
        with pytest.raises(DocumentNotFoundError):
            await service.analyze_document(doc.id, "stu-1", "SCIENCES")

    async def test_exercises_from_document(self, make_service, documents):
        doc = await documents.save("stu-1", "Probabilités.txt", TXT, ("p" * 600).encode())
        primary = StubPrimary('{"exercises": [{"question": "Q"}]}')
        service = make_service(primary)

        result = await service.generate_exercises_from_document(doc.id, "stu-1")

        assert len(result.exercises) == 1
        prompt = primary.calls[0]["prompt"]
        assert f'Sujet: "Probabilités - Contenu: {"p" * 500}"' in prompt
        assert "Génère 5 exercices" in prompt

    async def test_delete_document_invalidates_upload(self, make_service, documents):
        doc = await documents.save("stu-1", "photo.png", "image/png", b"\x89PNG")
        service = make_service()
        await service.gateway.upload_and_cache(doc.id, documents.for_student("stu-1"))
        assert len(service.gateway.state.uploads) == 1

        await service.delete_document(doc.id, "stu-1")

        assert len(service.gateway.state.uploads) == 0
        with pytest.raises(DocumentNotFoundError):
            documents.get(doc.id)

    async def test_document_content(self, make_service, documents):
        doc = await documents.save("stu-1", "n.txt", TXT, b"contenu")
        out = await make_service().get_document_content(doc.id, "stu-1")
        assert (out.name, out.content) == ("n.txt", "contenu")


# ── Conversations ────────────────────────────────────────────


class TestConversations:
    async def test_list_get_delete(self, make_service):
        service = make_service()
        resp = await service.send_message("stu-1", _request("Bonjour"))

        assert [c.id for c in await service.list_conversations("stu-1")] == [resp.conversation_id]
        assert await service.list_conversations("stu-2") == []
        conv = await service.get_conversation(resp.conversation_id, "stu-1")
        assert len(conv.turns) == 2

        with pytest.raises(ConversationNotFoundError):
            await service.delete_conversation(resp.conversation_id, "stu-2")
        await service.delete_conversation(resp.conversation_id, "stu-1")
        with pytest.raises(ConversationNotFoundError):
            await service.get_conversation(resp.conversation_id, "stu-1")


# ── Pure helpers ─────────────────────────────────────────────


def test_extract_key_points_caps_at_ten():
    summary = "\n".join(f"- point {i}" for i in range(15))
    points = extract_key_points(summary)
    assert len(points) == 10
    assert points[0] == "point 0"


def test_extract_key_points_ignores_prose():
    assert extract_key_points("## Titre\nTexte\n  - indenté") == ["indenté"]


@pytest.mark.parametrize(
    "message, expected_first",
    [
        ("J'ai un problème de géométrie", "Explique-moi la méthode"),
        ("J'ai peur du bac", "Techniques de relaxation"),
        ("Fais-moi un planning", "Crée-moi un planning de révision"),
    ],
)
def test_suggestions_from_keywords(message, expected_first):
    assert generate_suggestions(message, "SCIENCES")[0] == expected_first


@pytest.mark.parametrize(
    "branch, expected_first",
    [
        ("SCIENCES", "Aide-moi en maths"),
        ("LETTRES", "Aide-moi en dissertation"),
        ("ECONOMIE", "Aide en économie"),
        ("TECHNIQUE", "Besoin d'aide?"),
        (None, "Besoin d'aide?"),
    ],
)
def test_suggestions_from_branch(branch, expected_first):
    assert generate_suggestions("Bonjour", branch)[0] == expected_first


def test_to_exercise_set_rejects_wrong_shape():
    assert to_exercise_set([1, 2]).exercises == []
    assert to_exercise_set({"exercises": "none"}).exercises == []
