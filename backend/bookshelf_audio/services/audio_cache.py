"""Filesystem cache of narrated page audio, keyed by (book, page)."""

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

from ..errors import AudioNotCachedError, NotFoundError, StorageError
from .library import is_safe_book_id

logger = logging.getLogger(__name__)

AUDIO_SUFFIX = ".wav"
_PAGE_FILE_RE = re.compile(r"^page-(\d+)\.wav$")


class AudioCache:
    """One file per page under ``<audio_dir>/<book_id>/page-<n>.wav``.

    Files are only ever replaced whole: writes go to a temp file in the same
    directory and are moved into place with ``os.replace``.
    """

    def __init__(self, audio_dir: Path) -> None:
        self.audio_dir = audio_dir

    def book_dir(self, book_id: str) -> Path:
        if not is_safe_book_id(book_id):
            raise NotFoundError(f"Invalid book id: {book_id!r}")
        return self.audio_dir / book_id

    def path_for(self, book_id: str, page: int) -> Path:
        return self.book_dir(book_id) / f"page-{page}{AUDIO_SUFFIX}"

    def has(self, book_id: str, page: int) -> bool:
        return self.path_for(book_id, page).is_file()

    def get(self, book_id: str, page: int) -> bytes:
        path = self.path_for(book_id, page)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise AudioNotCachedError(book_id, page) from None
        except OSError as e:
            raise StorageError(f"Failed to read cached audio {path}: {e}") from e

    def put(self, book_id: str, page: int, data: bytes) -> Path:
        path = self.path_for(book_id, page)
        tmp_name: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
            )
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StorageError(f"Failed to write cached audio {path}: {e}") from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
        logger.info(f"Cached audio for book {book_id} page {page} ({len(data)} bytes)")
        return path

    def cached_pages(self, book_id: str) -> list[int]:
        book_dir = self.book_dir(book_id)
        if not book_dir.is_dir():
            return []
        pages = []
        for item in book_dir.iterdir():
            match = _PAGE_FILE_RE.match(item.name)
            if match and item.is_file():
                pages.append(int(match.group(1)))
        return sorted(pages)

    def delete_all(self, book_id: str) -> int:
        """Best-effort removal of every cached page of a book.

        Returns the number of page files removed. Files that cannot be
        removed are logged and left behind.
        """
        book_dir = self.book_dir(book_id)
        if not book_dir.exists():
            return 0

        removed = 0
        try:
            entries = list(book_dir.iterdir())
        except OSError as e:
            logger.error(f"Failed to list audio directory {book_dir}: {e}")
            return 0

        for entry in entries:
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                    if _PAGE_FILE_RE.match(entry.name):
                        removed += 1
            except OSError as e:
                logger.error(f"Failed to delete audio file {entry}: {e}")

        try:
            book_dir.rmdir()
        except OSError as e:
            logger.warning(f"Audio directory {book_dir} not removed: {e}")

        logger.info(f"Deleted {removed} cached audio files for book {book_id}")
        return removed
