"""Bookshelf audio backend - main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .errors import BookshelfAudioError
from .middleware.rate_limit import RateLimiter, RateLimitMiddleware
from .routers import audio
from .services.audio_cache import AudioCache
from .services.batch_generation import BatchAudioGenerator
from .services.library import Library
from .services.page_audio import PageAudioService, PageTextSource
from .services.pdf_text import PdfTextExtractor
from .speech.factory import build_speech_synthesizer
from .speech.interface import SpeechSynthesizer

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class LazySynthesizer:
    """Builds the configured synthesizer on first use and keeps it."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._instance: Optional[SpeechSynthesizer] = None

    def __call__(self) -> SpeechSynthesizer:
        if self._instance is None:
            self._instance = build_speech_synthesizer(self.settings)
        return self._instance


async def handle_service_error(request: Request, exc: BookshelfAudioError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": exc.status_code,
            "error": exc.title,
            "code": exc.error_code,
            "message": str(exc),
        },
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    library: Optional[Library] = None,
    extractor: Optional[PageTextSource] = None,
    synthesizer: Optional[SpeechSynthesizer] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """Build the application with its own set of services."""
    settings = settings or get_settings()

    library = library or Library(settings.books_dir)
    cache = AudioCache(settings.audio_dir)
    synthesizer_provider = (lambda: synthesizer) if synthesizer is not None else LazySynthesizer(settings)
    page_audio = PageAudioService(
        library,
        extractor or PdfTextExtractor(),
        cache,
        synthesizer_provider,
        synthesis_timeout=settings.synthesis_timeout_seconds,
        max_chars=settings.tts_max_chars,
    )
    batch_generator = BatchAudioGenerator(library, page_audio, max_workers=settings.batch_workers)
    limiter = rate_limiter or RateLimiter(
        requests_per_minute=settings.rate_limit_requests_per_minute,
        cleanup_interval_seconds=settings.rate_limit_cleanup_interval_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        logger.info("Starting Bookshelf audio backend")
        logger.info(f"Books directory: {settings.books_dir}")
        logger.info(f"Audio cache directory: {settings.audio_dir}")
        logger.info(f"Narration: {settings.tts_provider} voice={settings.tts_voice}")
        if settings.rate_limit_enabled:
            limiter.start()

        yield

        logger.info("Shutting down Bookshelf audio backend")
        limiter.stop()
        batch_generator.shutdown()

    app = FastAPI(
        title="Bookshelf Audio",
        description="Page narration, batch audio generation and read-along timings for the Bookshelf library",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.audio_cache = cache
    app.state.page_audio = page_audio
    app.state.batch_generator = batch_generator
    app.state.rate_limiter = limiter

    if settings.rate_limit_enabled:
        app.add_middleware(RateLimitMiddleware, limiter=limiter)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After", "X-Audio-Cache", "X-Text-Truncated"],
    )

    app.add_exception_handler(BookshelfAudioError, handle_service_error)
    app.include_router(audio.router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "name": "Bookshelf Audio",
            "version": "0.1.0",
            "status": "running",
        }

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "tts_provider": settings.tts_provider,
            "voice": settings.tts_voice,
        }

    return app


configure_logging(get_settings())
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "bookshelf_audio.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
