"""Models for batch narration jobs, page audio and read-along timings."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    """Possible states for a book's batch narration job."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.CANCELLED, JobStatus.FAILED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BookAudioJob:
    """Progress record of one batch narration run.

    Only the worker running the job mutates it once it has been handed off.
    Readers get the live object and must treat it as read-only.
    """

    book_id: str
    status: JobStatus = JobStatus.IDLE
    current_page: int = 0
    total_pages: int = 0
    start_page: Optional[int] = None
    end_page: Optional[int] = None
    pages_processed: int = 0
    pages_synthesized: int = 0
    progress_percentage: float = 0.0
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    truncated_pages: list[int] = field(default_factory=list)
    queued_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def idle(cls, book_id: str, page_count: int) -> "BookAudioJob":
        return cls(book_id=book_id, total_pages=page_count)

    @classmethod
    def running(cls, book_id: str, start_page: int, end_page: int) -> "BookAudioJob":
        return cls(
            book_id=book_id,
            status=JobStatus.RUNNING,
            current_page=start_page - 1,
            total_pages=end_page,
            start_page=start_page,
            end_page=end_page,
            queued_at=_utcnow(),
        )

    @property
    def pages_in_range(self) -> int:
        if self.start_page is None or self.end_page is None:
            return 0
        return self.end_page - self.start_page + 1

    def record_page(self, page: int, synthesized: bool, truncated: bool) -> None:
        """Advance progress after ``page`` is known to be in the cache."""
        self.pages_processed += 1
        if synthesized:
            self.pages_synthesized += 1
        if truncated:
            self.truncated_pages.append(page)
        self.current_page = page
        self.progress_percentage = self.pages_processed * 100.0 / self.pages_in_range

    def mark_started(self) -> None:
        """Called by the worker once it picks the job up from the queue."""
        self.started_at = _utcnow()

    def mark_completed(self) -> None:
        self.status = JobStatus.COMPLETED
        self.completed_at = _utcnow()

    def mark_cancelled(self) -> None:
        self.status = JobStatus.CANCELLED
        self.completed_at = _utcnow()

    def mark_failed(self, message: str, code: str) -> None:
        self.status = JobStatus.FAILED
        self.error_message = message
        self.error_code = code
        self.completed_at = _utcnow()


class CamelModel(BaseModel):
    """Response model serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobStatusResponse(CamelModel):
    status: JobStatus
    current_page: int
    total_pages: int
    progress_percentage: float
    start_page: Optional[int] = None
    end_page: Optional[int] = None
    pages_processed: int = 0
    pages_synthesized: int = 0
    truncated_pages: list[int] = []
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    queued_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: BookAudioJob) -> "JobStatusResponse":
        return cls(
            status=job.status,
            current_page=job.current_page,
            total_pages=job.total_pages,
            progress_percentage=job.progress_percentage,
            start_page=job.start_page,
            end_page=job.end_page,
            pages_processed=job.pages_processed,
            pages_synthesized=job.pages_synthesized,
            truncated_pages=list(job.truncated_pages),
            error_message=job.error_message,
            error_code=job.error_code,
            queued_at=job.queued_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class AudioStatusResponse(CamelModel):
    book_id: str
    page_number: int
    cached: bool


class MessageResponse(CamelModel):
    message: str


class WordTiming(CamelModel):
    """Estimated position of one word in the page narration, in seconds."""
    word: str
    start_time: float
    end_time: float


class PageTextWithTimings(CamelModel):
    """Page text plus estimated word timings for read-along highlighting."""
    text: str
    word_timings: list[WordTiming]
    audio_url: str
    truncated: bool = False


@dataclass
class PageAudio:
    """Audio bytes for one page and how they were obtained."""

    data: bytes
    cached: bool
    truncated: bool = False
