"""Document text extraction and AI summarization pipeline."""
from .errors import (
    Cancelled,
    CorruptFile,
    EmptyInput,
    EmptyResult,
    ErrorKind,
    ExtractionError,
    InvalidOptions,
    MissingCredential,
    OCRFailure,
    PipelineError,
    ProviderError,
    SummaryError,
    TransientFailureExhausted,
    UnsupportedFormat,
)
from .progress import CancelToken, ProgressEvent, ProgressStage
from .schemas import Document, DocumentKind, DocumentStatus, SummaryOptions
from .services.document import Extractor, Summarizer
from .session import DocumentSession

__version__ = "0.1.0"
