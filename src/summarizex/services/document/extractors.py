from __future__ import annotations

from abc import ABC, abstractmethod
from io import BytesIO
from typing import Callable, Dict, List, Optional

import anyio
import fitz  # PyMuPDF
import pytesseract  # OCR library (requires Tesseract binary installed)
from PIL import Image as PILImage

from ...config import Settings, settings as default_settings
from ...errors import CorruptFile, OCRFailure, UnsupportedFormat
from ...logging_config import get_logger
from ...progress import CancelToken, ProgressCallback, ProgressReporter, ProgressStage
from ...schemas import Document, DocumentKind

log = get_logger("summarizex.services.extractors")


PAGE_SEPARATOR = "\n\n"


# OCR Engine

class TesseractEngine:
    """Shared Tesseract handle.

    One engine serves every image of the session. Recognition runs in worker
    threads bounded by a capacity limiter so concurrent documents queue for
    the engine instead of spawning unbounded tesseract processes.
    """

    def __init__(
        self,
        lang: str = "eng",
        config: str = "",
        tesseract_cmd: Optional[str] = None,
        max_concurrency: int = 2,
    ):
        self.lang = lang
        self.config = config
        self.tesseract_cmd = tesseract_cmd
        self.max_concurrency = max_concurrency
        self._limiter: Optional[anyio.CapacityLimiter] = None
        self._verified = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _verify(self) -> None:
        if self.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
        version = pytesseract.get_tesseract_version()
        log.info("Tesseract engine ready version=%s lang=%s", version, self.lang)
        self._verified = True

    def _image_to_string(self, image: PILImage.Image) -> str:
        return pytesseract.image_to_string(image, lang=self.lang, config=self.config)

    async def recognize(self, image: PILImage.Image) -> str:
        if self._closed:
            raise OCRFailure("OCR engine has already been released")
        if self._limiter is None:
            self._limiter = anyio.CapacityLimiter(self.max_concurrency)
        limiter = self._limiter
        try:
            if not self._verified:
                await anyio.to_thread.run_sync(self._verify, limiter=limiter)
            return await anyio.to_thread.run_sync(self._image_to_string, image, limiter=limiter)
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, OSError, RuntimeError) as e:
            raise OCRFailure(f"Text recognition failed: {e}") from e

    def close(self) -> None:
        self._closed = True
        self._limiter = None


EngineFactory = Callable[[], TesseractEngine]


# Extraction Strategies

class BaseExtractionStrategy(ABC):
    """One way of turning a payload of a given kind into text."""

    @property
    @abstractmethod
    def kind(self) -> str:
        pass

    @abstractmethod
    async def extract(self, payload: bytes, reporter: ProgressReporter) -> str:
        pass


class PDFStrategy(BaseExtractionStrategy):
    """Reads the embedded text layer page by page. Image-only pages contribute nothing."""

    def __init__(self) -> None:
        # PyMuPDF is not thread safe, so all fitz work goes through one worker at a time
        self._limiter: Optional[anyio.CapacityLimiter] = None

    @property
    def kind(self) -> str:
        return DocumentKind.pdf.value

    @staticmethod
    def _open(payload: bytes) -> fitz.Document:
        return fitz.open(stream=payload, filetype="pdf")

    @staticmethod
    def _page_text(pdf_doc: fitz.Document, page_num: int) -> str:
        return pdf_doc[page_num].get_text()

    async def extract(self, payload: bytes, reporter: ProgressReporter) -> str:
        if self._limiter is None:
            self._limiter = anyio.CapacityLimiter(1)
        limiter = self._limiter

        reporter.emit(ProgressStage.LOADING, "Loading PDF")
        try:
            pdf_doc = await anyio.to_thread.run_sync(self._open, payload, limiter=limiter)
        except Exception as e:
            raise CorruptFile(f"Failed to open PDF: {e}") from e

        page_texts: List[str] = []
        try:
            if pdf_doc.needs_pass:
                raise CorruptFile("PDF is password protected")
            total_pages = len(pdf_doc)
            for page_num in range(total_pages):
                reporter.raise_if_cancelled()
                reporter.emit(
                    ProgressStage.PARSING,
                    f"Parsing page {page_num + 1} of {total_pages}",
                    (page_num + 1) / total_pages,
                )
                try:
                    page_text = await anyio.to_thread.run_sync(self._page_text, pdf_doc, page_num, limiter=limiter)
                except Exception as e:
                    raise CorruptFile(f"Failed to read page {page_num + 1} of {total_pages}: {e}") from e
                page_texts.append(page_text.rstrip())
        finally:
            pdf_doc.close()

        return PAGE_SEPARATOR.join(text for text in page_texts if text)


class ImageStrategy(BaseExtractionStrategy):
    """Single OCR pass over the whole image."""

    def __init__(self, engine_provider: Callable[[], TesseractEngine]):
        self._engine_provider = engine_provider

    @property
    def kind(self) -> str:
        return DocumentKind.image.value

    @staticmethod
    def _decode(payload: bytes) -> PILImage.Image:
        img = PILImage.open(BytesIO(payload))
        try:
            img.load()
        except Exception:
            img.close()
            raise
        return img

    async def extract(self, payload: bytes, reporter: ProgressReporter) -> str:
        try:
            image = await anyio.to_thread.run_sync(self._decode, payload)
        except Exception as e:
            raise CorruptFile(f"Failed to decode image: {e}") from e

        try:
            reporter.raise_if_cancelled()
            reporter.emit(ProgressStage.RECOGNIZING, "Recognizing text")
            text = await self._engine_provider().recognize(image)
        finally:
            image.close()
        return text.strip()


# Extractor

class Extractor:
    """Turns a document's raw payload into plain text.

    A single instance is meant to live for the whole session: it owns the OCR
    engine and hands it to every image it processes. Call ``cleanup()`` when
    the session ends.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        engine_factory: Optional[EngineFactory] = None,
    ):
        self._settings = settings or default_settings
        self._engine_factory = engine_factory or self._default_engine
        self._engine: Optional[TesseractEngine] = None
        self._strategies: Dict[str, BaseExtractionStrategy] = {}
        self.register(PDFStrategy())
        self.register(ImageStrategy(self._acquire_engine))

    def register(self, strategy: BaseExtractionStrategy) -> None:
        self._strategies[strategy.kind] = strategy

    def _default_engine(self) -> TesseractEngine:
        return TesseractEngine(
            lang=self._settings.ocr_lang,
            config=self._settings.ocr_config,
            tesseract_cmd=self._settings.tesseract_cmd,
            max_concurrency=self._settings.ocr_max_concurrency,
        )

    def _acquire_engine(self) -> TesseractEngine:
        if self._engine is None:
            self._engine = self._engine_factory()
            log.info("OCR engine created")
        return self._engine

    async def process(
        self,
        document: Document,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """
        Extract plain text from a document.

        Args:
            document: Document descriptor; ``kind`` selects the strategy
            on_progress: Receives this call's progress events only
            cancel: Token the caller flips to abandon the call

        Returns:
            Extracted text, possibly empty

        Raises:
            UnsupportedFormat, CorruptFile, OCRFailure, Cancelled
        """
        strategy = self._strategies.get(document.kind)
        if strategy is None:
            raise UnsupportedFormat(f"Unsupported file type {document.kind!r}. Upload a PDF or an image.")
        if not document.file:
            raise CorruptFile(f"{document.name} is empty")

        reporter = ProgressReporter(document.name, on_progress, cancel)
        reporter.raise_if_cancelled()
        log.info("Extracting document id=%s kind=%s size=%d", document.id, strategy.kind, len(document.file))

        text = await strategy.extract(document.file, reporter)

        reporter.raise_if_cancelled()
        reporter.emit(ProgressStage.EXTRACTED, "Text extracted", 1.0)
        log.info("Extracted document id=%s chars=%d", document.id, len(text))
        return text

    def cleanup(self) -> None:
        """Release the shared OCR engine. Safe to call repeatedly."""
        engine, self._engine = self._engine, None
        if engine is None:
            return
        engine.close()
        log.info("OCR engine released")
