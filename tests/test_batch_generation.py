from __future__ import annotations

import threading
import time

import pytest

from bookshelf_audio.errors import BookNotFoundError, InvalidRangeError, JobConflictError
from bookshelf_audio.models.audio import JobStatus
from bookshelf_audio.services.batch_generation import BatchAudioGenerator, resolve_page_range
from bookshelf_audio.services.page_audio import PageAudioService

from .conftest import FakeExtractor, FakeSynthesizer

WAIT = 5


def _generator(library, cache, synth: FakeSynthesizer, **kwargs) -> BatchAudioGenerator:
    page_audio = PageAudioService(library, FakeExtractor(), cache, lambda: synth, **kwargs)
    return BatchAudioGenerator(library, page_audio, max_workers=2)


def test_resolve_page_range_defaults() -> None:
    assert resolve_page_range(10, None, None) == (1, 10)
    assert resolve_page_range(10, 4, None) == (4, 10)
    assert resolve_page_range(10, None, 0) == (1, 10)
    assert resolve_page_range(10, 3, 3) == (3, 3)


@pytest.mark.parametrize(
    "start_page,end_page",
    [(0, 5), (-2, 5), (8, 5), (11, None), (1, 11)],
)
def test_resolve_page_range_rejects(start_page, end_page) -> None:
    with pytest.raises(InvalidRangeError):
        resolve_page_range(10, start_page, end_page)


def test_full_book_completes_in_order(generator, synthesizer, cache) -> None:
    job = generator.start("book-1")
    assert job.status is JobStatus.RUNNING

    job = generator.wait("book-1", timeout=WAIT)

    assert job.status is JobStatus.COMPLETED
    assert job.current_page == 10
    assert job.total_pages == 10
    assert job.progress_percentage == 100.0
    assert job.pages_synthesized == 10
    assert job.completed_at is not None
    assert synthesizer.pages == list(range(1, 11))
    assert cache.cached_pages("book-1") == list(range(1, 11))


def test_start_returns_initial_record(library, cache) -> None:
    gate = threading.Event()
    generator = _generator(library, cache, FakeSynthesizer(gate=gate))
    try:
        job = generator.start("book-1", 3, 6)
        assert job.status is JobStatus.RUNNING
        assert job.current_page in (2, 3)
        assert job.total_pages == 6
        assert job.queued_at is not None
        assert job.completed_at is None
    finally:
        gate.set()
        generator.wait("book-1", timeout=WAIT)
        generator.shutdown()


def test_fully_cached_range_never_synthesizes(generator, synthesizer, cache) -> None:
    cache.put("book-1", 3, b"already here")

    generator.start("book-1", start_page=3, end_page=3)
    job = generator.wait("book-1", timeout=WAIT)

    assert job.status is JobStatus.COMPLETED
    assert job.progress_percentage == 100.0
    assert job.pages_synthesized == 0
    assert synthesizer.calls == []
    assert cache.get("book-1", 3) == b"already here"


def test_partial_range_progress(generator, synthesizer) -> None:
    generator.start("book-1", start_page=4, end_page=7)
    job = generator.wait("book-1", timeout=WAIT)

    assert job.status is JobStatus.COMPLETED
    assert job.current_page == 7
    assert job.total_pages == 7
    assert job.pages_processed == 4
    assert synthesizer.pages == [4, 5, 6, 7]


@pytest.mark.parametrize("start_page,end_page", [(0, 5), (8, 5), (1, 20)])
def test_invalid_range_leaves_no_job(generator, start_page, end_page) -> None:
    with pytest.raises(InvalidRangeError):
        generator.start("book-1", start_page=start_page, end_page=end_page)
    assert generator.jobs == {}
    assert generator.get_progress("book-1").status is JobStatus.IDLE


def test_unknown_book_fails_synchronously(generator) -> None:
    with pytest.raises(BookNotFoundError):
        generator.start("missing")
    with pytest.raises(BookNotFoundError):
        generator.get_progress("missing")


def test_idle_progress_uses_page_count(generator) -> None:
    job = generator.get_progress("book-1")
    assert job.status is JobStatus.IDLE
    assert job.current_page == 0
    assert job.total_pages == 10
    assert job.progress_percentage == 0.0


def test_progress_is_monotonic(library, cache) -> None:
    generator = _generator(library, cache, FakeSynthesizer(delay=0.01))
    try:
        generator.start("book-1")
        seen: list[tuple[int, float]] = []
        deadline = time.monotonic() + WAIT
        while time.monotonic() < deadline:
            job = generator.get_progress("book-1")
            seen.append((job.current_page, job.progress_percentage))
            if job.status is not JobStatus.RUNNING:
                break
            time.sleep(0.002)

        assert generator.get_progress("book-1").status is JobStatus.COMPLETED
        pages = [page for page, _ in seen]
        percents = [percent for _, percent in seen]
        assert pages == sorted(pages)
        assert percents == sorted(percents)
    finally:
        generator.shutdown()


def test_cancel_stops_at_page_boundary(library, cache) -> None:
    gate = threading.Event()
    synth = FakeSynthesizer(gate=gate)
    generator = _generator(library, cache, synth)
    try:
        generator.start("book-1")
        assert synth.started.wait(WAIT)

        assert generator.cancel("book-1") is True
        gate.set()
        job = generator.wait("book-1", timeout=WAIT)

        assert job.status is JobStatus.CANCELLED
        assert job.completed_at is not None
        assert job.current_page == 1
        assert synth.pages == [1]
        assert cache.cached_pages("book-1") == [1]
        assert "book-1" not in generator._cancel_events
    finally:
        gate.set()
        generator.shutdown()


def test_cancel_without_running_job_is_noop(generator) -> None:
    assert generator.cancel("book-1") is False
    generator.start("book-1", 1, 1)
    generator.wait("book-1", timeout=WAIT)
    assert generator.cancel("book-1") is False
    assert generator.get_progress("book-1").status is JobStatus.COMPLETED


def test_second_start_while_running_conflicts(library, cache) -> None:
    gate = threading.Event()
    synth = FakeSynthesizer(gate=gate)
    generator = _generator(library, cache, synth)
    try:
        first = generator.start("book-1", 1, 3)
        assert synth.started.wait(WAIT)

        with pytest.raises(JobConflictError):
            generator.start("book-1", 5, 6)
        assert generator.get_progress("book-1") is first

        gate.set()
        assert generator.wait("book-1", timeout=WAIT).status is JobStatus.COMPLETED
        assert synth.pages == [1, 2, 3]
    finally:
        gate.set()
        generator.shutdown()


def test_restart_after_terminal_replaces_record(generator, synthesizer) -> None:
    first = generator.start("book-1", 1, 2)
    generator.wait("book-1", timeout=WAIT)

    second = generator.start("book-1", 1, 4)
    generator.wait("book-1", timeout=WAIT)

    assert second is not first
    assert generator.get_progress("book-1") is second
    assert second.status is JobStatus.COMPLETED
    assert second.pages_synthesized == 2
    assert synthesizer.pages == [1, 2, 3, 4]


def test_failure_marks_job_failed_and_resume_skips_cached(library, cache) -> None:
    failing = _generator(library, cache, FakeSynthesizer(fail_on={3}))
    try:
        failing.start("book-1", 1, 5)
        job = failing.wait("book-1", timeout=WAIT)
    finally:
        failing.shutdown()

    assert job.status is JobStatus.FAILED
    assert job.error_code == "synthesis_error"
    assert "page 3" in job.error_message
    assert job.current_page == 2
    assert job.completed_at is not None
    assert cache.cached_pages("book-1") == [1, 2]

    healthy_synth = FakeSynthesizer()
    healthy = _generator(library, cache, healthy_synth)
    try:
        healthy.start("book-1", 1, 5)
        job = healthy.wait("book-1", timeout=WAIT)
    finally:
        healthy.shutdown()

    assert job.status is JobStatus.COMPLETED
    assert healthy_synth.pages == [3, 4, 5]


def test_synthesis_timeout_fails_job(library, cache) -> None:
    gate = threading.Event()
    generator = _generator(library, cache, FakeSynthesizer(gate=gate), synthesis_timeout=0.05)
    try:
        generator.start("book-1", 1, 2)
        job = generator.wait("book-1", timeout=WAIT)
        assert job.status is JobStatus.FAILED
        assert job.error_code == "synthesis_error"
        assert "timed out" in job.error_message
        assert not cache.has("book-1", 1)
    finally:
        gate.set()
        generator.shutdown()


def test_truncated_pages_are_reported(library, cache) -> None:
    synth = FakeSynthesizer()
    extractor = FakeExtractor({2: "x" * 50})
    page_audio = PageAudioService(library, extractor, cache, lambda: synth, max_chars=10)
    generator = BatchAudioGenerator(library, page_audio)
    try:
        generator.start("book-1", 1, 3)
        job = generator.wait("book-1", timeout=WAIT)
    finally:
        generator.shutdown()

    assert job.status is JobStatus.COMPLETED
    assert job.truncated_pages == [2]


def test_jobs_for_different_books_are_independent(books_dir, library, cache) -> None:
    from .conftest import write_book

    write_book(books_dir, "book-2", page_count=3)
    synth = FakeSynthesizer()
    generator = _generator(library, cache, synth)
    try:
        generator.start("book-1", 1, 2)
        generator.start("book-2")
        assert generator.wait("book-1", timeout=WAIT).status is JobStatus.COMPLETED
        assert generator.wait("book-2", timeout=WAIT).status is JobStatus.COMPLETED
    finally:
        generator.shutdown()

    assert cache.cached_pages("book-2") == [1, 2, 3]


def test_clear_forgets_finished_job(generator) -> None:
    generator.start("book-1", 1, 1)
    generator.wait("book-1", timeout=WAIT)

    assert generator.clear("book-1") is True
    assert generator.get_progress("book-1").status is JobStatus.IDLE
    assert generator.clear("book-1") is False


def test_queued_job_is_not_stamped_started_until_a_worker_takes_it(books_dir, library, cache) -> None:
    from .conftest import write_book

    write_book(books_dir, "book-2", page_count=2)
    gate = threading.Event()
    synth = FakeSynthesizer(gate=gate)
    page_audio = PageAudioService(library, FakeExtractor(), cache, lambda: synth)
    generator = BatchAudioGenerator(library, page_audio, max_workers=1)
    try:
        first = generator.start("book-1", 1, 1)
        assert synth.started.wait(WAIT)
        queued = generator.start("book-2")

        assert first.started_at is not None
        assert queued.status is JobStatus.RUNNING
        assert queued.queued_at is not None
        assert queued.started_at is None

        gate.set()
        assert generator.wait("book-1", timeout=WAIT).status is JobStatus.COMPLETED
        done = generator.wait("book-2", timeout=WAIT)
        assert done.status is JobStatus.COMPLETED
        assert done.started_at >= done.queued_at
    finally:
        gate.set()
        generator.shutdown()


def test_clear_leaves_running_job_alone(library, cache) -> None:
    gate = threading.Event()
    synth = FakeSynthesizer(gate=gate)
    generator = _generator(library, cache, synth)
    try:
        generator.start("book-1", 1, 1)
        assert synth.started.wait(WAIT)
        assert generator.clear("book-1") is False
        assert generator.get_progress("book-1").status is JobStatus.RUNNING
    finally:
        gate.set()
        generator.wait("book-1", timeout=WAIT)
        generator.shutdown()
