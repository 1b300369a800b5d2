"""Exception taxonomy shared by the services, the HTTP layer and the CLI."""


class BookshelfAudioError(Exception):
    """Base class for errors raised by the audio services."""

    error_code = "internal_error"
    status_code = 500
    title = "Internal Server Error"


class InvalidRangeError(BookshelfAudioError):
    """Start/end page outside the book or in the wrong order."""

    error_code = "invalid_range"
    status_code = 400
    title = "Invalid Page Range"


class InvalidPageError(BookshelfAudioError):
    """Single page number outside ``1..page_count``."""

    error_code = "invalid_page"
    status_code = 400
    title = "Invalid Page"


class NotFoundError(BookshelfAudioError):
    error_code = "not_found"
    status_code = 404
    title = "Not Found"


class BookNotFoundError(NotFoundError):
    def __init__(self, book_id: str) -> None:
        super().__init__(f"Book not found with id: {book_id}")
        self.book_id = book_id


class AudioNotCachedError(NotFoundError):
    def __init__(self, book_id: str, page: int) -> None:
        super().__init__(f"No cached audio for book {book_id} page {page}")
        self.book_id = book_id
        self.page = page


class JobConflictError(BookshelfAudioError):
    """A batch job is already running for the book."""

    error_code = "job_conflict"
    status_code = 409
    title = "Conflict"


class StorageError(BookshelfAudioError):
    """Audio cache read or write failed."""

    error_code = "storage_error"
    status_code = 500
    title = "Storage Error"


class SynthesisError(BookshelfAudioError):
    """The narration backend failed, timed out or is not configured."""

    error_code = "synthesis_error"
    status_code = 502
    title = "Speech Synthesis Error"


class ProcessingError(BookshelfAudioError):
    """The PDF or the requested page could not be read."""

    error_code = "processing_error"
    status_code = 400
    title = "PDF Processing Error"


def error_code_for(exc: BaseException) -> str:
    if isinstance(exc, BookshelfAudioError):
        return exc.error_code
    return BookshelfAudioError.error_code


__all__ = [
    "AudioNotCachedError",
    "BookNotFoundError",
    "BookshelfAudioError",
    "InvalidPageError",
    "InvalidRangeError",
    "JobConflictError",
    "NotFoundError",
    "ProcessingError",
    "StorageError",
    "SynthesisError",
    "error_code_for",
]
