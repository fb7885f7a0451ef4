from __future__ import annotations

import random
from typing import Callable, List, Optional, Protocol

import anyio
import openai
from openai import AsyncOpenAI

from ...config import Defaults, LengthPreset, Settings, settings as default_settings
from ...errors import (
    EmptyInput,
    EmptyResult,
    InvalidOptions,
    MissingCredential,
    ProviderError,
    SummaryError,
    TransientFailureExhausted,
)
from ...logging_config import get_logger
from ...progress import CancelToken, ProgressCallback, ProgressReporter, ProgressStage
from ...schemas import SummaryOptions
from .chunking import ParagraphChunker

log = get_logger("summarizex.services.summarizer")


TRANSIENT_STATUS_CODES = frozenset({408, 409, 429})


class CompletionClient(Protocol):
    async def complete(self, system: str, prompt: str, max_tokens: Optional[int] = None) -> str:
        ...

    async def close(self) -> None:
        ...


ClientFactory = Callable[[str], CompletionClient]


class OpenAIClient:
    """Chat-completions client bound to one API key."""

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 120.0,
        base_url: Optional[str] = None,
        temperature: float = 0.2,
    ):
        self.model = model
        self.temperature = temperature
        # retries are handled by the Summarizer, not the SDK
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    async def complete(self, system: str, prompt: str, max_tokens: Optional[int] = None) -> str:
        resp = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=self.temperature,
            max_tokens=max_tokens,
        )
        if not getattr(resp, "choices", None):
            return ""

        choice = resp.choices[0]
        if getattr(choice, "finish_reason", None) == "content_filter":
            raise ProviderError("The provider rejected the document under its content policy")

        msg = choice.message
        usage = getattr(resp, "usage", None)
        log.debug(
            "Completion received model=%s prompt_tokens=%s completion_tokens=%s",
            self.model,
            getattr(usage, "prompt_tokens", None),
            getattr(usage, "completion_tokens", None),
        )
        return (msg.content or "") if msg else ""

    async def close(self) -> None:
        await self._client.close()


def is_transient(exc: BaseException) -> bool:
    """Rate limits, timeouts, connection drops and 5xx responses are worth retrying."""
    if isinstance(exc, TimeoutError):
        return True
    if isinstance(exc, openai.APIConnectionError):  # includes APITimeoutError
        return True
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code in TRANSIENT_STATUS_CODES or exc.status_code >= 500
    return False


def resolve_options(options: SummaryOptions, settings: Settings) -> tuple[LengthPreset, str]:
    preset = settings.summary_lengths.get(options.length)
    if preset is None:
        raise InvalidOptions(
            f"Unknown summary length {options.length!r}; expected one of {sorted(settings.summary_lengths)}"
        )
    directive = settings.summary_styles.get(options.style)
    if directive is None:
        raise InvalidOptions(
            f"Unknown summary style {options.style!r}; expected one of {sorted(settings.summary_styles)}"
        )
    return preset, directive


def build_prompt(text: str, options: SummaryOptions, settings: Settings, combining: bool = False) -> str:
    preset, directive = resolve_options(options, settings)
    source = "the following partial summaries of one document" if combining else "the following document"
    return (
        f"Summarize {source} in {preset.min_words}-{preset.max_words} words.\n"
        f"{directive}\n"
        "Only use information present in the text.\n\n"
        f"{text}"
    )


def within_length_band(summary: str, preset: LengthPreset, tolerance: float) -> bool:
    words = len(summary.split())
    return preset.min_words * (1 - tolerance) <= words <= preset.max_words * (1 + tolerance)


def build_part_prompt(text: str, index: int, total: int, max_words: int) -> str:
    return (
        f"This is part {index} of {total} of a longer document. "
        f"Summarize it in at most {max_words} words, keeping names, figures and conclusions.\n\n"
        f"{text}"
    )


class Summarizer:
    """
    Turns extracted text into a summary through a text-generation endpoint.

    Holds the session's API key. Every call snapshots the key at start, so
    replacing it with ``set_api_key`` never affects requests already in flight.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self._settings = settings or default_settings
        self._client_factory = client_factory or self._default_client
        self._api_key: Optional[str] = None

    def _default_client(self, api_key: str) -> CompletionClient:
        return OpenAIClient(
            api_key=api_key,
            model=self._settings.openai_model,
            timeout=self._settings.openai_timeout,
            base_url=self._settings.openai_base_url,
            temperature=self._settings.openai_temperature,
        )

    @property
    def has_api_key(self) -> bool:
        return self._api_key is not None

    def set_api_key(self, api_key: Optional[str]) -> None:
        self._api_key = (api_key or "").strip() or None
        log.info("API key %s", "updated" if self._api_key else "cleared")

    async def generate(
        self,
        text: str,
        options: Optional[SummaryOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
        document_name: str = "",
    ) -> str:
        """
        Summarize text under the given length and style.

        Input longer than ``max_input_chars`` is split into parts that are
        summarized separately and then combined in one final request.

        Raises:
            EmptyInput, MissingCredential, InvalidOptions, ProviderError,
            TransientFailureExhausted, EmptyResult, Cancelled
        """
        options = options or SummaryOptions()
        if not text or not text.strip():
            raise EmptyInput("There is no text to summarize")
        api_key = self._api_key
        if api_key is None:
            raise MissingCredential("An API key is required before summarizing")
        preset, _ = resolve_options(options, self._settings)

        reporter = ProgressReporter(document_name, on_progress, cancel)
        reporter.raise_if_cancelled()
        text = text.strip()

        client = self._client_factory(api_key)
        try:
            reporter.emit(ProgressStage.SENDING, "Sending request")
            if len(text) <= self._settings.max_input_chars:
                summary = await self._request(
                    client, build_prompt(text, options, self._settings), preset.max_tokens, reporter
                )
            else:
                summary = await self._map_reduce(client, text, options, preset, reporter)
        finally:
            await client.close()

        reporter.raise_if_cancelled()
        reporter.emit(ProgressStage.DONE, "Done", 1.0)
        if not within_length_band(summary, preset, self._settings.length_tolerance):
            log.warning(
                "Summary length outside requested band words=%d length=%s band=%d-%d",
                len(summary.split()),
                options.length,
                preset.min_words,
                preset.max_words,
            )
        log.info("Summary generated chars=%d length=%s style=%s", len(summary), options.length, options.style)
        return summary

    async def _map_reduce(
        self,
        client: CompletionClient,
        text: str,
        options: SummaryOptions,
        preset: LengthPreset,
        reporter: ProgressReporter,
    ) -> str:
        chunks = ParagraphChunker(self._settings.max_input_chars).chunk(text)
        total = len(chunks)
        log.info("Input of %d chars split into %d parts", len(text), total)

        part_words = self._settings.chunk_summary_words
        partials: List[str] = []
        for chunk in chunks:
            index = chunk.chunk_index + 1
            reporter.raise_if_cancelled()
            reporter.emit(ProgressStage.SUMMARIZING_PART, f"Summarizing part {index} of {total}", index / (total + 1))
            prompt = build_part_prompt(chunk.text, index, total, part_words)
            partials.append(await self._request(client, prompt, part_words * 3, reporter))

        reporter.raise_if_cancelled()
        reporter.emit(ProgressStage.COMBINING, "Combining results", total / (total + 1))
        combined = "\n\n".join(partials)
        prompt = build_prompt(combined, options, self._settings, combining=True)
        return await self._request(client, prompt, preset.max_tokens, reporter)

    def _backoff(self, attempt: int) -> float:
        delay = min(self._settings.retry_backoff * (2 ** (attempt - 1)), self._settings.retry_backoff_max)
        return delay + random.uniform(0, delay * self._settings.retry_jitter)

    async def _request(
        self,
        client: CompletionClient,
        prompt: str,
        max_tokens: int,
        reporter: ProgressReporter,
    ) -> str:
        max_attempts = self._settings.max_attempts
        last_error: Optional[str] = None
        empty = False
        for attempt in range(1, max_attempts + 1):
            reporter.raise_if_cancelled()
            try:
                with anyio.fail_after(self._settings.openai_timeout):
                    content = await client.complete(Defaults.SYSTEM_PROMPT, prompt, max_tokens=max_tokens)
            except SummaryError:
                raise
            except Exception as e:
                if not is_transient(e):
                    log.error("Provider call failed (attempt %d): %s", attempt, e, exc_info=True)
                    raise ProviderError(f"Summarization request failed: {e}") from e
                last_error = str(e) or type(e).__name__
                empty = False
                log.warning("Transient provider failure (attempt %d/%d): %s", attempt, max_attempts, last_error)
            else:
                content = (content or "").strip()
                if content:
                    return content
                empty = True
                log.warning("Provider returned an empty summary (attempt %d/%d)", attempt, max_attempts)

            if attempt < max_attempts:
                await anyio.sleep(self._backoff(attempt))

        if empty:
            raise EmptyResult(f"The provider returned an empty summary after {max_attempts} attempts")
        raise TransientFailureExhausted(f"Summarization failed after {max_attempts} attempts: {last_error}")
