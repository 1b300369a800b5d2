"""Single-page text extraction from PDF files."""

import logging
from pathlib import Path

from pypdf import PdfReader

from ..errors import ProcessingError

logger = logging.getLogger(__name__)

EMPTY_PAGE_TEXT = "This page appears to be empty or contains only images."


class PdfTextExtractor:
    """Extract the text of one page of a PDF (1-indexed pages)."""

    def extract_page_text(self, pdf_path: Path, page_number: int) -> str:
        if not pdf_path.is_file():
            raise ProcessingError(f"PDF file not found at path: {pdf_path}")

        try:
            reader = PdfReader(str(pdf_path))
            page_total = len(reader.pages)
            if page_number < 1 or page_number > page_total:
                raise ProcessingError(
                    f"Page {page_number} is out of range for a {page_total}-page PDF"
                )
            text = (reader.pages[page_number - 1].extract_text() or "").strip()
        except ProcessingError:
            raise
        except Exception as e:
            logger.error(f"Failed to extract text from page {page_number} of {pdf_path}: {e}")
            raise ProcessingError("Failed to extract text from PDF") from e

        if not text:
            logger.warning(f"Page {page_number} is empty or contains no extractable text")
            return EMPTY_PAGE_TEXT

        logger.info(f"Extracted {len(text)} characters from page {page_number}")
        return text
