"""Document processing domain services."""
from .chunking import ParagraphChunker, TextChunk
from .extractors import (
    BaseExtractionStrategy,
    Extractor,
    ImageStrategy,
    PDFStrategy,
    TesseractEngine,
)
from .summarizer import OpenAIClient, Summarizer, build_prompt, is_transient

__all__ = [
    "ParagraphChunker",
    "TextChunk",
    "BaseExtractionStrategy",
    "Extractor",
    "ImageStrategy",
    "PDFStrategy",
    "TesseractEngine",
    "OpenAIClient",
    "Summarizer",
    "build_prompt",
    "is_transient",
]
