"""Audio API router: page narration, batch generation and cache management."""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, Response

from ..models.audio import (
    AudioStatusResponse,
    JobStatusResponse,
    MessageResponse,
    PageTextWithTimings,
)
from ..services.batch_generation import BatchAudioGenerator
from ..services.page_audio import PageAudioService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/books", tags=["audio"])


def _page_audio(request: Request) -> PageAudioService:
    return request.app.state.page_audio


def _batch(request: Request) -> BatchAudioGenerator:
    return request.app.state.batch_generator


@router.get("/{book_id}/pages/{page_number}/audio")
def get_page_audio(request: Request, book_id: str, page_number: int) -> Response:
    """Audio for one page. Served from the cache, narrated on a miss."""
    logger.info(f"Received request for audio: book={book_id}, page={page_number}")
    page_audio = _page_audio(request).generate_or_get(book_id, page_number)

    return Response(
        content=page_audio.data,
        media_type="audio/wav",
        headers={
            "Content-Disposition": f'inline; filename="book-{book_id}-page-{page_number}.wav"',
            "X-Audio-Cache": "hit" if page_audio.cached else "miss",
            "X-Text-Truncated": "true" if page_audio.truncated else "false",
        },
    )


@router.get("/{book_id}/pages/{page_number}/audio/status", response_model=AudioStatusResponse)
def get_page_audio_status(request: Request, book_id: str, page_number: int) -> AudioStatusResponse:
    cached = _page_audio(request).is_cached(book_id, page_number)
    return AudioStatusResponse(book_id=book_id, page_number=page_number, cached=cached)


@router.get("/{book_id}/pages/{page_number}/text-with-timings", response_model=PageTextWithTimings)
def get_page_text_with_timings(request: Request, book_id: str, page_number: int) -> PageTextWithTimings:
    """Page text with estimated word timings for read-along highlighting."""
    logger.info(f"Received request for page text with timings: book={book_id}, page={page_number}")
    return _page_audio(request).page_text_with_timings(book_id, page_number)


@router.delete("/{book_id}/audio", response_model=MessageResponse)
def delete_book_audio(request: Request, book_id: str) -> MessageResponse:
    logger.info(f"Deleting all audio for book {book_id}")
    _page_audio(request).delete_book_audio(book_id)
    _batch(request).clear(book_id)
    return MessageResponse(message="Audio files deleted successfully")


@router.post("/{book_id}/audio/generate-all", status_code=202, response_model=MessageResponse)
def start_batch_generation(
    request: Request,
    book_id: str,
    start_page: Optional[int] = Query(None, alias="startPage"),
    end_page: Optional[int] = Query(None, alias="endPage"),
) -> MessageResponse:
    """Start narrating a page range in the background. Poll generation-status for progress."""
    logger.info(f"Starting batch audio generation for book {book_id} (pages {start_page} to {end_page})")
    _batch(request).start(book_id, start_page, end_page)
    return MessageResponse(message="Batch audio generation started")


@router.get("/{book_id}/audio/generation-status", response_model=JobStatusResponse)
def get_batch_generation_status(request: Request, book_id: str) -> JobStatusResponse:
    job = _batch(request).get_progress(book_id)
    return JobStatusResponse.from_job(job)


@router.delete("/{book_id}/audio/generation", response_model=MessageResponse)
async def cancel_batch_generation(request: Request, book_id: str) -> MessageResponse:
    logger.info(f"Cancelling batch generation for book {book_id}")
    _batch(request).cancel(book_id)
    return MessageResponse(message="Batch generation cancellation requested")
