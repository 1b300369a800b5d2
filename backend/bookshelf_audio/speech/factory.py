from functools import lru_cache

from ..config import Settings, get_settings
from .gemini import GeminiSpeechSynthesizer
from .interface import SpeechSynthesizer


def build_speech_synthesizer(settings: Settings) -> SpeechSynthesizer:
    """Build the narration backend selected by ``settings.tts_provider``."""
    if settings.tts_provider == "gemini":
        return GeminiSpeechSynthesizer(
            api_key=settings.google_api_key,
            model=settings.tts_model,
            voice=settings.tts_voice,
            language_code=settings.tts_language_code,
            speaking_rate=settings.tts_speaking_rate,
            pitch=settings.tts_pitch,
            max_chars=settings.tts_max_chars,
        )
    raise ValueError(f"Unknown speech provider: {settings.tts_provider}")


@lru_cache
def get_speech_synthesizer() -> SpeechSynthesizer:
    """Factory to get the configured SpeechSynthesizer instance."""
    return build_speech_synthesizer(get_settings())
