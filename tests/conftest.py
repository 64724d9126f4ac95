"""Shared fixtures: in-process collaborators for the conversion pipeline."""
from __future__ import annotations

import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from ebooklib import epub

from snipr.core.config import Settings, SynthesisConfig
from snipr.pipeline.extractor import ContentExtractor
from snipr.pipeline.synthesis import BaseSpeechEngine, EngineCall, EngineResult, SpeechSynthesizer
from snipr.services import build_job_service
from snipr.store.documents import InMemoryDocumentStore
from snipr.store.objects import ObjectStorage

ARTICLE_HTML = """
<html>
  <head><title>Test</title></head>
  <body>
    <nav>Home | About</nav>
    <article><p>Hello. World.</p></article>
    <footer>Copyright</footer>
  </body>
</html>
"""


class FakeEngine(BaseSpeechEngine):
    """Returns fixed audio; optionally blocks each call until that call is aborted."""

    name = "fake"

    def __init__(self, audio: bytes = b"\xff" * 12000, block_s: float = 0.0, completed: bool = True):
        super().__init__(SynthesisConfig())
        self.audio = audio
        self.block_s = block_s
        self.completed = completed
        self.calls: List[str] = []
        self.aborted = False

    def delay_for(self, ssml: str) -> float:
        return self.block_s

    def speak_ssml(self, ssml: str, call: Optional[EngineCall] = None) -> EngineResult:
        self.calls.append(ssml)
        released = threading.Event()
        if call is not None:
            call.on_abort(lambda: self._abort(released))
        delay = self.delay_for(ssml)
        if delay and released.wait(delay):
            return EngineResult(completed=False, diagnostic="aborted")
        if not self.completed:
            return EngineResult(completed=False, diagnostic="voice unavailable")
        return EngineResult(completed=True, audio=self.audio)

    def _abort(self, released: threading.Event) -> None:
        self.aborted = True
        released.set()


class FakeStorage(ObjectStorage):
    """Dict-backed object storage; the first `fail_puts` puts raise OSError."""

    name = "fake"

    def __init__(self, fail_puts: int = 0, url: Optional[str] = None):
        self.objects: Dict[str, bytes] = {}
        self.fail_puts = fail_puts
        self.put_calls = 0
        self.url = url

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        self.put_calls += 1
        if self.put_calls <= self.fail_puts:
            raise OSError(f"upload refused (attempt {self.put_calls})")
        self.objects[key] = data

    def exists(self, key: str) -> bool:
        return key in self.objects

    def public_url(self, key: str) -> str:
        return self.url or f"https://cdn.example/{key}"


def html_extractor(pages: Dict[str, str], status: int = 200) -> ContentExtractor:
    """ContentExtractor whose fetches are served from `pages`."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = pages.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(status, text=body, headers={"Content-Type": "text/html"})

    return ContentExtractor(client=httpx.Client(transport=httpx.MockTransport(handler)))


def make_epub(
    chapters: List[str],
    title: str = "A Small Book",
    author: str = "Ann Author",
) -> bytes:
    """
    EPUB bytes with one XHTML document per chapter body, plus a nav page.

    Table-of-contents labels are "Contents label N" so tests can check the
    nav page is not read aloud.
    """
    book = epub.EpubBook()
    book.set_identifier("snipr-test-book")
    book.set_language("en")
    if title:
        book.set_title(title)
    if author:
        book.add_author(author)

    items = []
    for i, body in enumerate(chapters, start=1):
        item = epub.EpubHtml(title=f"Contents label {i}", file_name=f"chap_{i}.xhtml", lang="en")
        item.content = f"<html><head><title>c{i}</title></head><body>{body}</body></html>"
        book.add_item(item)
        items.append(item)

    book.toc = items
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = ["nav", *items]

    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "book.epub"
        epub.write_epub(str(path), book)
        return path.read_bytes()


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_service(sleeps) -> Callable:
    """
    Factory for a JobService over in-memory collaborators.

    Keyword arguments replace individual collaborators.
    """
    created = []

    def _make(raw: Optional[dict] = None, **overrides):
        overrides.setdefault("store", InMemoryDocumentStore())
        overrides.setdefault("object_storage", FakeStorage())
        overrides.setdefault("extractor", html_extractor({"https://example.com/article": ARTICLE_HTML}))
        overrides.setdefault("engine", FakeEngine())
        overrides.setdefault("sleep", sleeps)
        service = build_job_service(Settings(raw=raw or {}), **overrides)
        created.append(service)
        return service

    yield _make

    for service in created:
        service.runner.shutdown(wait_for_jobs=True)


def slow_synthesizer(engine: FakeEngine, timeout_s: float = 0.05) -> SpeechSynthesizer:
    return SpeechSynthesizer(engine, SynthesisConfig(timeout_s=timeout_s, max_workers=2))
