"""Cache-first narration of single book pages."""

import logging
from typing import Callable, Optional, Protocol

from ..errors import InvalidPageError
from ..models.audio import PageAudio, PageTextWithTimings
from ..models.book import BookRecord
from ..speech.interface import (
    DEFAULT_MAX_CHARS,
    SpeechSynthesizer,
    prepare_text,
    synthesize_with_timeout,
)
from .audio_cache import AudioCache
from .library import Library
from .word_timing import estimate_word_timings

logger = logging.getLogger(__name__)


class PageTextSource(Protocol):
    def extract_page_text(self, pdf_path, page_number: int) -> str: ...


def page_audio_url(book_id: str, page: int) -> str:
    return f"/api/books/{book_id}/pages/{page}/audio"


class PageAudioService:
    """Narrates pages through the synthesizer, consulting the cache first.

    ``synthesizer_provider`` is called the first time audio is actually
    needed, so a missing API key only fails requests that must synthesize.
    """

    def __init__(
        self,
        library: Library,
        extractor: PageTextSource,
        cache: AudioCache,
        synthesizer_provider: Callable[[], SpeechSynthesizer],
        synthesis_timeout: Optional[float] = None,
        max_chars: int = DEFAULT_MAX_CHARS,
    ) -> None:
        self.library = library
        self.extractor = extractor
        self.cache = cache
        self._synthesizer_provider = synthesizer_provider
        self.synthesis_timeout = synthesis_timeout
        self.max_chars = max_chars

    @property
    def synthesizer(self) -> SpeechSynthesizer:
        return self._synthesizer_provider()

    def _get_page_book(self, book_id: str, page: int) -> BookRecord:
        book = self.library.get_book(book_id)
        if page < 1 or page > book.page_count:
            raise InvalidPageError(
                f"Invalid page number: {page}. Book has {book.page_count} pages."
            )
        return book

    def is_cached(self, book_id: str, page: int) -> bool:
        return self.cache.has(book_id, page)

    def narrate(self, book: BookRecord, page: int) -> bool:
        """Synthesize ``page`` and store it in the cache, ignoring any cached copy.

        Returns True when the page text had to be truncated for the backend.
        """
        synthesizer = self.synthesizer
        text, truncated = self.page_text(book, page)
        self._synthesize_to_cache(synthesizer, book, page, text)
        return truncated

    def page_text(self, book: BookRecord, page: int) -> tuple[str, bool]:
        """Extracted page text cut to the backend limit, and whether it was cut."""
        text = self.extractor.extract_page_text(book.pdf_path, page)
        text, truncated = prepare_text(text, self.max_chars)
        if truncated:
            logger.warning(
                f"Page {page} of book {book.id} exceeds {self.max_chars} chars, truncating"
            )
        return text, truncated

    def _synthesize_to_cache(
        self, synthesizer: SpeechSynthesizer, book: BookRecord, page: int, text: str
    ) -> None:
        audio = synthesize_with_timeout(synthesizer, text, self.synthesis_timeout)
        self.cache.put(book.id, page, audio)

    def generate_or_get(self, book_id: str, page: int) -> PageAudio:
        book = self._get_page_book(book_id, page)

        if self.cache.has(book_id, page):
            logger.info(f"Serving cached audio for book {book_id} page {page}")
            return PageAudio(data=self.cache.get(book_id, page), cached=True)

        logger.info(f"Generating audio for book {book_id} page {page} (not in cache)")
        truncated = self.narrate(book, page)
        return PageAudio(data=self.cache.get(book_id, page), cached=False, truncated=truncated)

    def page_text_with_timings(self, book_id: str, page: int) -> PageTextWithTimings:
        book = self._get_page_book(book_id, page)
        text, truncated = self.page_text(book, page)

        if not self.cache.has(book_id, page):
            self._synthesize_to_cache(self.synthesizer, book, page, text)

        timings = estimate_word_timings(text)
        logger.info(f"Generated {len(timings)} estimated word timings for book {book_id} page {page}")
        return PageTextWithTimings(
            text=text,
            word_timings=timings,
            audio_url=page_audio_url(book_id, page),
            truncated=truncated,
        )

    def delete_book_audio(self, book_id: str) -> int:
        return self.cache.delete_all(book_id)
