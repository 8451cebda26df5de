"""Document store — uploaded study material and its extracted text.

The gateway and tutor service only ever see the two-method
:class:`DocumentSource` capability; :class:`LocalDocumentStore` satisfies it
with files on local disk and metadata in memory.  Text extraction is
delegated to PyMuPDF, python-docx and python-pptx.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
import uuid
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field

from errors import DocumentNotFoundError
from models.gateway import DocumentText, RawDocument

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES: frozenset[str] = frozenset({
    "application/pdf",
    "text/plain",
    "image/png",
    "image/jpeg",
    "image/jpg",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",  # docx
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",  # pptx
})

_EXTENSION_BY_MIME = {
    "application/pdf": ".pdf",
    "text/plain": ".txt",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": ".pptx",
}


class DocumentSource(Protocol):
    """Narrow capability the AI layer needs from the document collaborator."""

    async def fetch_content(self, document_id: str) -> DocumentText | None: ...

    async def fetch_raw_data(self, document_id: str) -> RawDocument | None: ...


class StoredDocument(BaseModel):
    """Metadata row for one uploaded document."""

    id: str
    student_id: str
    name: str
    mime_type: str
    path: str
    size: int = 0
    summary: str | None = None
    key_points: list[str] = Field(default_factory=list)
    mind_map: dict[str, Any] | None = None
    created_at: float = Field(default_factory=time.time)

    @property
    def title(self) -> str:
        """File name without its extension."""
        return Path(self.name).stem or self.name


# ── Text extraction ──────────────────────────────────────────


def extract_text(file_path: str | Path) -> str:
    """Extract plain text from a document file.

    Supports: PDF, DOCX, PPTX, TXT/MD.  Images and unknown formats yield "".
    """
    path = Path(file_path)
    ext = path.suffix.lower()

    if ext == ".pdf":
        import fitz  # PyMuPDF

        with fitz.open(str(path)) as pdf:
            return "\n".join(page.get_text() for page in pdf)

    if ext == ".docx":
        from docx import Document

        doc = Document(str(path))
        return "\n".join(p.text for p in doc.paragraphs if p.text.strip())

    if ext == ".pptx":
        from pptx import Presentation

        prs = Presentation(str(path))
        texts: list[str] = []
        for i, slide in enumerate(prs.slides, 1):
            slide_texts: list[str] = []
            for shape in slide.shapes:
                if shape.has_text_frame:
                    for paragraph in shape.text_frame.paragraphs:
                        text = paragraph.text.strip()
                        if text:
                            slide_texts.append(text)
            if slide_texts:
                texts.append(f"[Slide {i}]\n" + "\n".join(slide_texts))
        return "\n\n".join(texts)

    if ext in (".txt", ".md"):
        return path.read_text(encoding="utf-8", errors="ignore")

    return ""


# ── Local implementation ─────────────────────────────────────


class LocalDocumentStore:
    """Files under *uploads_dir*, metadata in memory.

    Suitable for single-instance deployments; the relational document
    table of the surrounding platform is out of scope here.
    """

    def __init__(self, uploads_dir: str | Path = "uploads", max_bytes: int = 10 * 1024 * 1024):
        self._dir = Path(uploads_dir)
        self._max_bytes = max_bytes
        self._docs: dict[str, StoredDocument] = {}

    async def save(
        self,
        student_id: str,
        name: str,
        mime_type: str,
        data: bytes,
    ) -> StoredDocument:
        """Store an uploaded file and register its metadata."""
        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValueError(
                "Type de fichier non supporté. Formats acceptés: PDF, TXT, DOCX, PPTX, PNG, JPG"
            )
        if len(data) > self._max_bytes:
            raise ValueError("Fichier trop volumineux (10 Mo maximum)")

        self._dir.mkdir(parents=True, exist_ok=True)
        suffix = Path(name).suffix.lower() or _EXTENSION_BY_MIME.get(mime_type, "")
        filename = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{suffix}"
        path = self._dir / filename
        await asyncio.to_thread(path.write_bytes, data)

        doc = StoredDocument(
            id=f"doc-{uuid.uuid4().hex[:12]}",
            student_id=student_id,
            name=name,
            mime_type=mime_type,
            path=str(path),
            size=len(data),
        )
        self._docs[doc.id] = doc
        logger.info("Stored document %s (%s, %d bytes)", doc.id, mime_type, len(data))
        return doc

    def get(self, document_id: str, student_id: str | None = None) -> StoredDocument:
        """Return a document, enforcing ownership when *student_id* is given."""
        doc = self._docs.get(document_id)
        if doc is None or (student_id is not None and doc.student_id != student_id):
            raise DocumentNotFoundError(document_id)
        return doc

    def list_documents(self, student_id: str) -> list[StoredDocument]:
        docs = [d for d in self._docs.values() if d.student_id == student_id]
        return sorted(docs, key=lambda d: d.created_at, reverse=True)

    def update(self, document_id: str, **fields: Any) -> StoredDocument:
        doc = self.get(document_id)
        updated = doc.model_copy(update=fields)
        self._docs[document_id] = updated
        return updated

    async def delete(self, document_id: str, student_id: str | None = None) -> None:
        doc = self.get(document_id, student_id)
        del self._docs[document_id]
        try:
            await asyncio.to_thread(Path(doc.path).unlink)
        except OSError:
            logger.warning("Could not remove file for document %s: %s", document_id, doc.path)

    async def extract_content(self, document_id: str, student_id: str | None = None) -> str:
        """Extracted text of a document, or "" when unreadable."""
        doc = self.get(document_id, student_id)
        path = Path(doc.path)
        if not path.is_file():
            return ""
        try:
            return await asyncio.to_thread(extract_text, path)
        except Exception as exc:
            logger.warning("Text extraction failed for %s: %s", doc.name, str(exc)[:100])
            return ""

    def for_student(self, student_id: str) -> StudentDocuments:
        """A :class:`DocumentSource` view restricted to one student's files."""
        return StudentDocuments(self, student_id)


class StudentDocuments:
    """:class:`DocumentSource` bound to a single student."""

    def __init__(self, store: LocalDocumentStore, student_id: str) -> None:
        self._store = store
        self._student_id = student_id

    async def fetch_content(self, document_id: str) -> DocumentText | None:
        try:
            doc = self._store.get(document_id, self._student_id)
        except DocumentNotFoundError:
            return None
        content = await self._store.extract_content(document_id, self._student_id)
        return DocumentText(name=doc.name, content=content)

    async def fetch_raw_data(self, document_id: str) -> RawDocument | None:
        try:
            doc = self._store.get(document_id, self._student_id)
        except DocumentNotFoundError:
            return None
        path = Path(doc.path)
        if not path.is_file():
            logger.warning("File not found: %s", path)
            return None
        data = await asyncio.to_thread(path.read_bytes)
        return RawDocument(data=data, mime_type=doc.mime_type, name=doc.name)


# ── Module-level Singleton ───────────────────────────────────

_store: LocalDocumentStore | None = None


def get_document_store() -> LocalDocumentStore:
    """Get the singleton document store instance."""
    global _store
    if _store is None:
        from config.settings import get_settings

        settings = get_settings()
        _store = LocalDocumentStore(
            uploads_dir=settings.uploads_dir,
            max_bytes=settings.max_upload_bytes,
        )
        logger.info("Initialized LocalDocumentStore (dir=%s)", settings.uploads_dir)
    return _store
