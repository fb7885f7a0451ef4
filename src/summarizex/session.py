from __future__ import annotations

import mimetypes
from typing import Dict, List, Optional

import anyio

from .config import Settings, settings as default_settings
from .errors import Cancelled, PipelineError
from .logging_config import get_logger
from .progress import CancelToken, ProgressCallback
from .schemas import (
    Document,
    DocumentStatus,
    SessionStats,
    SummaryOptions,
    kind_for_mime,
)
from .services.document import Extractor, Summarizer

log = get_logger("summarizex.session")


class DocumentSession:
    """
    Owns the documents of one session and drives them through their lifecycle.

    Extraction and summarization failures end up on the document itself
    (``status == error`` with a message); they are not raised to the caller.
    Deleting a document while it is being processed cancels the call and
    its late result is dropped.
    """

    def __init__(
        self,
        extractor: Optional[Extractor] = None,
        summarizer: Optional[Summarizer] = None,
        settings: Optional[Settings] = None,
    ):
        self._settings = settings or default_settings
        self.extractor = extractor or Extractor(settings=self._settings)
        self.summarizer = summarizer or Summarizer(settings=self._settings)
        self._documents: Dict[str, Document] = {}
        self._order: List[str] = []
        self._tokens: Dict[str, CancelToken] = {}

    # Credential

    def set_api_key(self, api_key: str) -> None:
        self.summarizer.set_api_key(api_key)

    def restore_api_key(self) -> bool:
        """Load a previously saved key from settings. Returns True if one was found."""
        if not self._settings.is_summarizer_enabled:
            log.warning("OPENAI_API_KEY missing -> summarizer disabled until a key is set")
            return False
        self.summarizer.set_api_key(self._settings.openai_api_key)
        return True

    # Documents

    @property
    def documents(self) -> List[Document]:
        return [self._documents[doc_id] for doc_id in self._order]

    def get(self, doc_id: str) -> Optional[Document]:
        return self._documents.get(doc_id)

    def _require(self, doc_id: str) -> Document:
        doc = self._documents.get(doc_id)
        if doc is None:
            raise KeyError(f"Document not found: {doc_id}")
        return doc

    def _alive(self, doc: Document, token: CancelToken) -> bool:
        return not token.cancelled and self._documents.get(doc.id) is doc

    async def add_file(
        self,
        name: str,
        payload: bytes,
        mime_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Document:
        mime = mime_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
        doc = Document(name=name, kind=kind_for_mime(mime), file=payload)
        self._documents[doc.id] = doc
        self._order.insert(0, doc.id)
        log.info("Document added id=%s name=%s kind=%s", doc.id, name, doc.kind)

        token = CancelToken()
        self._tokens[doc.id] = token
        try:
            text = await self.extractor.process(doc, on_progress, cancel=token)
        except Cancelled:
            log.info("Extraction cancelled id=%s", doc.id)
            return doc
        except anyio.get_cancelled_exc_class():
            if self._alive(doc, token):
                doc.mark_failed("Extraction was interrupted")
            raise
        except PipelineError as e:
            log.error("Extraction failed id=%s kind=%s: %s", doc.id, e.kind.value, e.message)
            if self._alive(doc, token):
                doc.mark_failed(e.message)
            return doc
        finally:
            if self._tokens.get(doc.id) is token:
                del self._tokens[doc.id]

        if self._alive(doc, token):
            doc.mark_extracted(text)
        return doc

    async def summarize(
        self,
        doc_id: str,
        options: Optional[SummaryOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Document:
        doc = self._require(doc_id)
        if doc.text is None or doc.status == DocumentStatus.summarizing:
            log.warning("Summarize ignored for id=%s in status %s", doc_id, doc.status.value)
            return doc
        options = options or SummaryOptions()
        doc.mark_summarizing(options.length)

        token = CancelToken()
        self._tokens[doc.id] = token
        try:
            summary = await self.summarizer.generate(
                doc.text or "",
                options,
                on_progress,
                cancel=token,
                document_name=doc.name,
            )
        except Cancelled:
            log.info("Summarization cancelled id=%s", doc.id)
            return doc
        except anyio.get_cancelled_exc_class():
            if self._alive(doc, token):
                doc.mark_failed("Summarization was interrupted")
            raise
        except PipelineError as e:
            log.error("Summarization failed id=%s kind=%s: %s", doc.id, e.kind.value, e.message)
            if self._alive(doc, token):
                doc.mark_failed(e.message)
            return doc
        finally:
            if self._tokens.get(doc.id) is token:
                del self._tokens[doc.id]

        if self._alive(doc, token):
            doc.mark_completed(summary)
        return doc

    async def regenerate(
        self,
        doc_id: str,
        options: Optional[SummaryOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Document:
        doc = self._require(doc_id)
        if doc.status not in (DocumentStatus.completed, DocumentStatus.error):
            log.warning("Regenerate ignored for id=%s in status %s", doc_id, doc.status.value)
            return doc
        return await self.summarize(doc_id, options, on_progress)

    def delete(self, doc_id: str) -> bool:
        token = self._tokens.pop(doc_id, None)
        if token is not None:
            token.cancel()
        if self._documents.pop(doc_id, None) is None:
            return False
        self._order.remove(doc_id)
        log.info("Document deleted id=%s", doc_id)
        return True

    def clear(self) -> None:
        for doc_id in list(self._order):
            self.delete(doc_id)

    def stats(self) -> SessionStats:
        docs = self.documents
        return SessionStats(
            total=len(docs),
            completed=sum(1 for d in docs if d.status == DocumentStatus.completed),
            in_progress=sum(1 for d in docs if d.in_progress),
            errors=sum(1 for d in docs if d.status == DocumentStatus.error),
        )

    def close(self) -> None:
        self.clear()
        self.extractor.cleanup()
