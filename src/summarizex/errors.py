from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    UNSUPPORTED_FORMAT = "unsupported_format"
    CORRUPT_FILE = "corrupt_file"
    OCR_FAILURE = "ocr_failure"
    EMPTY_INPUT = "empty_input"
    MISSING_CREDENTIAL = "missing_credential"
    INVALID_OPTIONS = "invalid_options"
    PROVIDER_ERROR = "provider_error"
    TRANSIENT_FAILURE_EXHAUSTED = "transient_failure_exhausted"
    EMPTY_RESULT = "empty_result"
    CANCELLED = "cancelled"


class PipelineError(RuntimeError):
    """Base class for every failure surfaced by the extraction and summary pipeline.

    Carries a stable ``kind`` for programmatic handling and a free-text
    ``message`` meant for display next to the document.
    """

    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class ExtractionError(PipelineError):
    """Raised when a document cannot be turned into text."""


class SummaryError(PipelineError):
    """Raised when text cannot be turned into a summary."""


class UnsupportedFormat(ExtractionError):
    kind = ErrorKind.UNSUPPORTED_FORMAT


class CorruptFile(ExtractionError):
    kind = ErrorKind.CORRUPT_FILE


class OCRFailure(ExtractionError):
    kind = ErrorKind.OCR_FAILURE


class EmptyInput(SummaryError):
    kind = ErrorKind.EMPTY_INPUT


class MissingCredential(SummaryError):
    kind = ErrorKind.MISSING_CREDENTIAL


class InvalidOptions(SummaryError):
    kind = ErrorKind.INVALID_OPTIONS


class ProviderError(SummaryError):
    """Terminal provider failure: bad credential, malformed request, policy rejection."""
    kind = ErrorKind.PROVIDER_ERROR


class TransientFailureExhausted(SummaryError):
    kind = ErrorKind.TRANSIENT_FAILURE_EXHAUSTED


class EmptyResult(SummaryError):
    kind = ErrorKind.EMPTY_RESULT


class Cancelled(ExtractionError, SummaryError):
    """The caller withdrew interest in the outcome."""
    kind = ErrorKind.CANCELLED
