"""Service for looking up book records from the file system."""

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from ..errors import BookNotFoundError
from ..models.book import BookMetadata, BookRecord

logger = logging.getLogger(__name__)


def is_safe_book_id(book_id: str) -> bool:
    """Book ids double as directory names and must stay one path component."""
    return bool(book_id) and "/" not in book_id and "\\" not in book_id and ".." not in book_id


def resolve_book_dir(books_dir: Path, book_id: str) -> Path | None:
    """Resolve and validate a book directory path."""
    if not is_safe_book_id(book_id):
        logger.warning(f"Invalid book_id received: {book_id}")
        return None

    root = books_dir.resolve()
    candidate = (root / book_id).resolve()

    try:
        candidate.relative_to(root)
    except ValueError:
        logger.warning(f"Rejected book_id outside books directory: {book_id}")
        return None

    return candidate


def load_book_metadata(book_dir: Path) -> BookMetadata | None:
    """Load book metadata from a directory."""
    metadata_path = book_dir / "metadata.json"
    if not metadata_path.exists():
        return None

    try:
        with open(metadata_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return BookMetadata(**data)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid metadata JSON in {metadata_path}: {e}")
        return None
    except ValidationError as e:
        logger.error(f"Metadata validation failed for {metadata_path}: {e}")
        return None
    except OSError as e:
        logger.error(f"Failed to load metadata from {metadata_path}: {e}")
        return None


class Library:
    """Read-only view of ``<books_dir>/<book_id>/metadata.json`` records."""

    def __init__(self, books_dir: Path) -> None:
        self.books_dir = books_dir

    def get_book(self, book_id: str) -> BookRecord:
        book_dir = resolve_book_dir(self.books_dir, book_id)
        if book_dir is None or not book_dir.is_dir():
            raise BookNotFoundError(book_id)

        metadata = load_book_metadata(book_dir)
        if metadata is None:
            raise BookNotFoundError(book_id)

        return BookRecord(
            id=book_id,
            title=metadata.title,
            author=metadata.author,
            page_count=metadata.page_count,
            pdf_path=book_dir / metadata.pdf_file,
        )
