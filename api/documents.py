"""Document API — upload, text extraction, analysis and exercises.

Uploads send the file as the raw request body; the file name travels in the
``name`` query parameter and the MIME type in ``Content-Type``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from api.deps import get_student_id
from models.tutor import Branch, Difficulty, DocumentContentOut, DocumentOut, ExerciseSet
from services.documents import StoredDocument
from services.tutor_service import TutorService, get_tutor_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai/documents", tags=["documents"])


def _document_out(doc: StoredDocument) -> DocumentOut:
    return DocumentOut(
        id=doc.id,
        name=doc.name,
        type=doc.mime_type,
        size=doc.size,
        summary=doc.summary,
        key_points=doc.key_points,
        mind_map=doc.mind_map,
        created_at=doc.created_at,
    )


@router.post("", response_model=DocumentOut, status_code=201)
async def upload_document(
    request: Request,
    name: str = Query(..., min_length=1),
    student_id: str = Depends(get_student_id),
    service: TutorService = Depends(get_tutor_service),
):
    """Register an uploaded document for the student."""
    mime_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    data = await request.body()
    if not data:
        raise HTTPException(status_code=400, detail="Aucun fichier fourni")
    try:
        doc = await service.documents.save(student_id, name, mime_type, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _document_out(doc)


@router.get("", response_model=list[DocumentOut])
async def list_documents(
    student_id: str = Depends(get_student_id),
    service: TutorService = Depends(get_tutor_service),
):
    return [_document_out(d) for d in service.documents.list_documents(student_id)]


@router.get("/{document_id}", response_model=DocumentOut)
async def get_document(
    document_id: str,
    student_id: str = Depends(get_student_id),
    service: TutorService = Depends(get_tutor_service),
):
    return _document_out(service.documents.get(document_id, student_id))


@router.get("/{document_id}/content", response_model=DocumentContentOut)
async def get_document_content(
    document_id: str,
    student_id: str = Depends(get_student_id),
    service: TutorService = Depends(get_tutor_service),
):
    return await service.get_document_content(document_id, student_id)


@router.post("/{document_id}/analyze", response_model=DocumentOut)
async def analyze_document(
    document_id: str,
    branch: str = Query(default=Branch.SCIENCES.value),
    student_id: str = Depends(get_student_id),
    service: TutorService = Depends(get_tutor_service),
):
    """Summarise a document and attach key points and a mind map to it."""
    doc = await service.analyze_document(document_id, student_id, branch)
    return _document_out(doc)


@router.post("/{document_id}/exercises", response_model=ExerciseSet)
async def generate_document_exercises(
    document_id: str,
    difficulty: Difficulty = Query(default=Difficulty.MEDIUM),
    student_id: str = Depends(get_student_id),
    service: TutorService = Depends(get_tutor_service),
):
    return await service.generate_exercises_from_document(document_id, student_id, difficulty)


@router.delete("/{document_id}", status_code=204)
async def delete_document(
    document_id: str,
    student_id: str = Depends(get_student_id),
    service: TutorService = Depends(get_tutor_service),
):
    await service.delete_document(document_id, student_id)
