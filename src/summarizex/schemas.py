from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional
from uuid import uuid4

from pydantic import BaseModel

from .config import Defaults


class DocumentKind(str, Enum):
    pdf = "pdf"
    image = "image"


class DocumentStatus(str, Enum):
    extracting = "extracting"
    extracted = "extracted"
    summarizing = "summarizing"
    completed = "completed"
    error = "error"


TRANSITIONS: Dict[DocumentStatus, FrozenSet[DocumentStatus]] = {
    DocumentStatus.extracting: frozenset({DocumentStatus.extracted, DocumentStatus.error}),
    DocumentStatus.extracted: frozenset({DocumentStatus.summarizing}),
    DocumentStatus.summarizing: frozenset({DocumentStatus.completed, DocumentStatus.error}),
    DocumentStatus.completed: frozenset({DocumentStatus.summarizing}),
    DocumentStatus.error: frozenset({DocumentStatus.summarizing}),
}


class InvalidTransition(ValueError):
    """Raised when a document is pushed into a status its lifecycle forbids."""
    pass


class SummaryOptions(BaseModel):
    length: str = Defaults.DEFAULT_LENGTH
    style: str = Defaults.DEFAULT_STYLE


class SessionStats(BaseModel):
    total: int
    completed: int
    in_progress: int
    errors: int


def new_document_id() -> str:
    return uuid4().hex


def kind_for_mime(mime_type: str) -> str:
    """Map a MIME type to a document kind; unknown types pass through unchanged."""
    if mime_type.startswith("image/"):
        return DocumentKind.image.value
    if mime_type == "application/pdf":
        return DocumentKind.pdf.value
    return mime_type


@dataclass
class Document:
    name: str
    kind: str
    file: bytes
    id: str = field(default_factory=new_document_id)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: DocumentStatus = DocumentStatus.extracting
    text: Optional[str] = None
    summary: Optional[str] = None
    error: Optional[str] = None
    summary_length: Optional[str] = None

    def _move(self, target: DocumentStatus) -> None:
        if target not in TRANSITIONS[self.status]:
            raise InvalidTransition(f"Document {self.id}: {self.status.value} -> {target.value} is not allowed")
        self.status = target

    def mark_extracted(self, text: str) -> None:
        if self.text is not None:
            raise InvalidTransition(f"Document {self.id} already holds extracted text")
        self._move(DocumentStatus.extracted)
        self.text = text

    def mark_summarizing(self, length: str) -> None:
        if self.text is None:
            raise InvalidTransition(f"Document {self.id} has no extracted text to summarize")
        self._move(DocumentStatus.summarizing)
        self.error = None
        self.summary_length = length

    def mark_completed(self, summary: str) -> None:
        self._move(DocumentStatus.completed)
        self.summary = summary

    def mark_failed(self, message: str) -> None:
        self._move(DocumentStatus.error)
        self.error = message

    @property
    def in_progress(self) -> bool:
        return self.status in (DocumentStatus.extracting, DocumentStatus.summarizing)
