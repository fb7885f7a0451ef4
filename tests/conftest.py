"""Shared fixtures: real PDF and PNG payloads plus doubles for the OCR engine and the LLM client."""

from __future__ import annotations

import inspect
import logging
import sys
from io import BytesIO
from typing import Any, Callable, List, Optional

import fitz
import httpx
import pytest
from PIL import Image as PILImage

from summarizex.config import Settings

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
    force=True,
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(
        openai_api_key="",
        openai_timeout=5.0,
        retry_backoff=0.0,
        retry_backoff_max=0.0,
        retry_jitter=0.0,
        max_input_chars=200,
        chunk_summary_words=20,
    )


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def _pdf_bytes(pages: List[str]) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def _png_bytes(size: tuple = (64, 32)) -> bytes:
    img = PILImage.new("RGB", size, "white")
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def make_pdf() -> Callable[[List[str]], bytes]:
    return _pdf_bytes


@pytest.fixture
def make_png() -> Callable[..., bytes]:
    return _png_bytes


# ---------------------------------------------------------------------------
# OCR engine double
# ---------------------------------------------------------------------------

class FakeEngine:
    def __init__(self, text: str = "", error: Optional[BaseException] = None):
        self.text = text
        self.error = error
        self.calls = 0
        self.close_calls = 0
        self.closed = False

    async def recognize(self, image: Any) -> str:
        assert not self.closed, "engine used after release"
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.text

    def close(self) -> None:
        assert not self.closed, "engine released twice"
        self.closed = True
        self.close_calls += 1


class EngineFactory:
    def __init__(self, text: str = "", error: Optional[BaseException] = None):
        self.text = text
        self.error = error
        self.engines: List[FakeEngine] = []

    def __call__(self) -> FakeEngine:
        engine = FakeEngine(self.text, self.error)
        self.engines.append(engine)
        return engine


@pytest.fixture
def engine_factory() -> Callable[..., EngineFactory]:
    return EngineFactory


# ---------------------------------------------------------------------------
# LLM client double
# ---------------------------------------------------------------------------

class FakeProvider:
    """Scripted provider. Each script item is a string, an exception or a (possibly async) callable."""

    def __init__(self, *script: Any, default: Any = "A concise summary."):
        self.script = list(script)
        self.default = default
        self.calls: List[str] = []
        self.keys: List[str] = []
        self.clients: List["FakeClient"] = []

    def factory(self, api_key: str) -> "FakeClient":
        self.keys.append(api_key)
        client = FakeClient(self)
        self.clients.append(client)
        return client

    async def respond(self, prompt: str) -> str:
        self.calls.append(prompt)
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            result = item(prompt)
            if inspect.isawaitable(result):
                result = await result
            return result
        return item


class FakeClient:
    def __init__(self, provider: FakeProvider):
        self.provider = provider
        self.closed = False

    async def complete(self, system: str, prompt: str, max_tokens: Optional[int] = None) -> str:
        return await self.provider.respond(prompt)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_provider() -> Callable[..., FakeProvider]:
    return FakeProvider


_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _status_error(cls: type, status: int, message: str = "provider error") -> Exception:
    return cls(message, response=httpx.Response(status, request=_REQUEST), body=None)


@pytest.fixture
def status_error() -> Callable[..., Exception]:
    return _status_error


@pytest.fixture
def api_request() -> httpx.Request:
    return _REQUEST
