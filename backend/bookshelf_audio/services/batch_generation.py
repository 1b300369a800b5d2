"""Background narration of a whole page range of a book.

One job per book runs on a worker thread. The worker walks the range in
ascending order, skips pages already in the audio cache, narrates the rest,
and publishes progress on a ``BookAudioJob`` that request threads poll.
Cancellation is cooperative: the flag is checked between pages, so the page
being synthesized when ``cancel`` arrives still completes.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from ..errors import InvalidRangeError, JobConflictError, error_code_for
from ..models.audio import BookAudioJob, JobStatus
from ..models.book import BookRecord
from .library import Library
from .page_audio import PageAudioService

logger = logging.getLogger(__name__)


def resolve_page_range(
    page_count: int, start_page: Optional[int], end_page: Optional[int]
) -> tuple[int, int]:
    """Apply range defaults and validate against the book's page count.

    An absent start page means page 1. An absent or non-positive end page
    means the last page. An explicit start page below 1 is rejected.
    """
    start = 1 if start_page is None else start_page
    end = page_count if end_page is None or end_page <= 0 else end_page

    if start < 1 or start > page_count:
        raise InvalidRangeError(f"Start page must be between 1 and {page_count}")
    if end < start or end > page_count:
        raise InvalidRangeError(f"End page must be between {start} and {page_count}")
    return start, end


class BatchAudioGenerator:
    def __init__(
        self,
        library: Library,
        page_audio: PageAudioService,
        max_workers: int = 2,
    ) -> None:
        self.library = library
        self.page_audio = page_audio
        self.lock = threading.Lock()
        self.jobs: dict[str, BookAudioJob] = {}
        self._cancel_events: dict[str, threading.Event] = {}
        self._futures: dict[str, Future] = {}
        workers = max(1, max_workers)
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="audio-batch")

    def start(
        self,
        book_id: str,
        start_page: Optional[int] = None,
        end_page: Optional[int] = None,
    ) -> BookAudioJob:
        """Validate the range and hand the job to a worker. Returns without waiting."""
        book = self.library.get_book(book_id)
        start, end = resolve_page_range(book.page_count, start_page, end_page)

        with self.lock:
            current = self.jobs.get(book_id)
            if current is not None and not current.status.is_terminal:
                raise JobConflictError(
                    f"Batch generation already running for book {book_id} "
                    f"(page {current.current_page} of {current.total_pages})"
                )
            job = BookAudioJob.running(book_id, start, end)
            cancel_event = threading.Event()
            self.jobs[book_id] = job
            self._cancel_events[book_id] = cancel_event
            try:
                self._futures[book_id] = self.executor.submit(
                    self._run_job, book, job, cancel_event
                )
            except RuntimeError as e:
                job.mark_failed(f"Batch executor unavailable: {e}", error_code_for(e))
                self._cancel_events.pop(book_id, None)
                raise

        logger.info(
            f"Queued batch audio generation for book {book_id}: pages {start} to {end} "
            f"({end - start + 1} pages)"
        )
        return job

    def _run_job(self, book: BookRecord, job: BookAudioJob, cancel_event: threading.Event) -> None:
        logger.info(f"Starting batch audio generation for book {book.id}")
        job.mark_started()
        try:
            for page in range(job.start_page, job.end_page + 1):
                if cancel_event.is_set():
                    job.mark_cancelled()
                    logger.info(f"Batch generation cancelled for book {book.id} before page {page}")
                    return

                if self.page_audio.is_cached(book.id, page):
                    logger.info(f"Page {page} already cached, skipping")
                    synthesized = truncated = False
                else:
                    logger.info(
                        f"Generating audio for page {page} (range: {job.start_page} to {job.end_page})"
                    )
                    truncated = self.page_audio.narrate(book, page)
                    synthesized = True

                job.record_page(page, synthesized=synthesized, truncated=truncated)

            job.mark_completed()
            logger.info(
                f"Batch audio generation completed for book {book.id} "
                f"(pages {job.start_page} to {job.end_page}, {job.pages_synthesized} synthesized)"
            )
        except Exception as exc:
            logger.exception(f"Batch generation failed for book {book.id}")
            job.mark_failed(str(exc) or exc.__class__.__name__, error_code_for(exc))
        finally:
            self._release(book.id, cancel_event)

    def _release(self, book_id: str, cancel_event: threading.Event) -> None:
        # A newer job may already own the slot for this book.
        with self.lock:
            if self._cancel_events.get(book_id) is cancel_event:
                del self._cancel_events[book_id]
                self._futures.pop(book_id, None)

    def get_progress(self, book_id: str) -> BookAudioJob:
        with self.lock:
            job = self.jobs.get(book_id)
        if job is not None:
            return job
        book = self.library.get_book(book_id)
        return BookAudioJob.idle(book_id, book.page_count)

    def cancel(self, book_id: str) -> bool:
        """Ask the running job for ``book_id`` to stop at the next page boundary.

        Returns True if a running job was signalled.
        """
        with self.lock:
            job = self.jobs.get(book_id)
            cancel_event = self._cancel_events.get(book_id)
            if job is None or cancel_event is None or job.status is not JobStatus.RUNNING:
                logger.info(f"No running batch generation to cancel for book {book_id}")
                return False
            cancel_event.set()
        logger.info(f"Cancelling batch generation for book {book_id}")
        return True

    def clear(self, book_id: str) -> bool:
        """Forget a finished job so the book reports IDLE again."""
        with self.lock:
            job = self.jobs.get(book_id)
            if job is None or not job.status.is_terminal:
                return False
            del self.jobs[book_id]
            self._cancel_events.pop(book_id, None)
            self._futures.pop(book_id, None)
        return True

    def wait(self, book_id: str, timeout: Optional[float] = None) -> BookAudioJob:
        """Block until the job for ``book_id`` has finished (CLI and tests)."""
        with self.lock:
            future = self._futures.get(book_id)
        if future is not None:
            future.exception(timeout=timeout)
        return self.get_progress(book_id)

    def shutdown(self, wait: bool = False) -> None:
        with self.lock:
            for cancel_event in self._cancel_events.values():
                cancel_event.set()
            pending = list(self._futures.items())
        for book_id, future in pending:
            if future.cancel():
                self.jobs[book_id].mark_cancelled()
        self.executor.shutdown(wait=wait, cancel_futures=True)
