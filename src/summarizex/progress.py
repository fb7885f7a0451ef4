from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .errors import Cancelled
from .logging_config import get_logger

log = get_logger("summarizex.progress")


class ProgressStage(str, Enum):
    # extraction
    LOADING = "loading"
    PARSING = "parsing"
    RECOGNIZING = "recognizing"
    EXTRACTED = "extracted"
    # summarization
    SENDING = "sending"
    SUMMARIZING_PART = "summarizing_part"
    COMBINING = "combining"
    DONE = "done"


@dataclass(frozen=True)
class ProgressEvent:
    stage: ProgressStage
    message: str
    fraction: Optional[float] = None  # None means indeterminate
    document_name: str = ""


ProgressCallback = Callable[[ProgressEvent], None]


class CancelToken:
    """Flag the controller flips when it no longer wants a call's result."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ProgressReporter:
    """Per-call progress channel.

    Each extraction or summary call builds its own reporter, so events only
    ever reach the callback that call was given. Once the call's token is
    cancelled the reporter goes silent.
    """

    def __init__(
        self,
        document_name: str,
        callback: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ):
        self.document_name = document_name
        self._callback = callback
        self._cancel = cancel

    @property
    def cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.cancelled

    def emit(self, stage: ProgressStage, message: str, fraction: Optional[float] = None) -> None:
        if self._callback is None or self.cancelled:
            return
        event = ProgressEvent(
            stage=stage,
            message=message,
            fraction=fraction,
            document_name=self.document_name,
        )
        try:
            self._callback(event)
        except Exception:
            # observers never steer the pipeline
            log.exception("Progress callback failed stage=%s document=%s", stage.value, self.document_name)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Cancelled(f"Processing of {self.document_name or 'document'} was cancelled")
