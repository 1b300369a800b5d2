from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from bookshelf_audio.services.audio_cache import AudioCache
from bookshelf_audio.services.batch_generation import BatchAudioGenerator
from bookshelf_audio.services.library import Library
from bookshelf_audio.services.page_audio import PageAudioService
from bookshelf_audio.speech.interface import SpeechSynthesizer


def write_book(books_dir: Path, book_id: str = "book-1", page_count: int = 10) -> Path:
    book_dir = books_dir / book_id
    book_dir.mkdir(parents=True)
    (book_dir / "metadata.json").write_text(
        json.dumps(
            {
                "id": book_id,
                "title": f"Title of {book_id}",
                "author": "A. Author",
                "page_count": page_count,
                "pdf_file": "book.pdf",
            }
        ),
        encoding="utf-8",
    )
    return book_dir


class FakeExtractor:
    """Returns ``page <n> text`` unless a page has explicit text."""

    def __init__(self, texts: dict[int, str] | None = None) -> None:
        self.texts = texts or {}
        self.calls: list[int] = []

    def extract_page_text(self, pdf_path, page_number: int) -> str:
        self.calls.append(page_number)
        return self.texts.get(page_number, f"page {page_number} text")


class FakeSynthesizer(SpeechSynthesizer):
    """Records every request. ``gate`` holds synthesis until set."""

    def __init__(
        self,
        max_chars: int = 5000,
        fail_on: set[int] | None = None,
        gate: threading.Event | None = None,
        delay: float = 0.0,
    ) -> None:
        self.max_chars = max_chars
        self.fail_on = fail_on or set()
        self.gate = gate
        self.delay = delay
        self.calls: list[str] = []
        self.lock = threading.Lock()
        self.started = threading.Event()

    @property
    def pages(self) -> list[int]:
        with self.lock:
            texts = list(self.calls)
        return [int(text.split()[1]) for text in texts if text.startswith("page ")]

    def synthesize(self, text: str) -> bytes:
        with self.lock:
            self.calls.append(text)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.delay:
            threading.Event().wait(self.delay)
        for page in self.fail_on:
            if text.startswith(f"page {page} "):
                from bookshelf_audio.errors import SynthesisError

                raise SynthesisError(f"backend rejected page {page}")
        return b"RIFF" + text.encode("utf-8")


@pytest.fixture
def books_dir(tmp_path: Path) -> Path:
    path = tmp_path / "books"
    path.mkdir()
    return path


@pytest.fixture
def cache(tmp_path: Path) -> AudioCache:
    return AudioCache(tmp_path / "audio")


@pytest.fixture
def library(books_dir: Path) -> Library:
    write_book(books_dir, "book-1", page_count=10)
    return Library(books_dir)


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()


@pytest.fixture
def page_audio(library, extractor, cache, synthesizer) -> PageAudioService:
    return PageAudioService(library, extractor, cache, lambda: synthesizer)


@pytest.fixture
def generator(library, page_audio):
    gen = BatchAudioGenerator(library, page_audio, max_workers=2)
    yield gen
    gen.shutdown(wait=False)
