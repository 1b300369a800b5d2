"""Pydantic models for book records read from the library directory."""

from pathlib import Path

from pydantic import BaseModel, Field


class BookMetadata(BaseModel):
    """Book metadata as stored in metadata.json."""
    id: str
    title: str
    author: str = ""
    page_count: int = Field(ge=0)
    pdf_file: str = "book.pdf"


class BookRecord(BaseModel):
    """A book resolved against the library, ready for narration."""
    id: str
    title: str
    author: str = ""
    page_count: int
    pdf_path: Path
