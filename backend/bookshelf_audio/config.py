"""Configuration management for the Bookshelf audio service."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    cors_allow_origins: list[str] = ["http://localhost:3000"]

    # Google API key (synthesis fails without it, the rest of the API still works)
    google_api_key: Optional[str] = None

    # Narration backend. Voice parameters are fixed here, never per request.
    tts_provider: str = "gemini"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    tts_voice: str = "Charon"
    tts_language_code: str = "en-US"
    tts_speaking_rate: float = 1.0
    tts_pitch: float = 0.0
    tts_max_chars: int = 5000
    synthesis_timeout_seconds: float = 120.0

    # Storage
    books_dir: Path = Path(__file__).parent.parent / "books"
    audio_dir: Path = Path(__file__).parent.parent / "audio"

    # Batch generation
    batch_workers: int = 2

    # Rate limiting (per client IP, token bucket)
    rate_limit_enabled: bool = True
    rate_limit_requests_per_minute: int = 60
    rate_limit_cleanup_interval_seconds: float = 600.0


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
