"""Gemini TTS narration backend for page audio."""

import base64
import io
import logging
import wave
from typing import Optional

from google import genai
from google.genai import types

from ..errors import SynthesisError
from .interface import DEFAULT_MAX_CHARS, SpeechSynthesizer

logger = logging.getLogger(__name__)

# Gemini TTS returns raw PCM: 24kHz, 16-bit, mono
SAMPLE_RATE = 24000
SAMPLE_WIDTH = 2
CHANNELS = 1

NARRATOR_PROMPT = """# AUDIO PROFILE: The Page Reader
## "The Study Companion"

### DIRECTOR'S NOTES
* **Pace:** {pace}. Keep the same tempo from the first word to the last.
* **Pitch:** {pitch}.
* **Articulation:** Clear and warm. Read exactly the text below, nothing else.
* **Breathing:** Natural pauses at sentence and paragraph breaks.

### TRANSCRIPT
"""


def _describe_rate(speaking_rate: float) -> str:
    if speaking_rate <= 0.85:
        return f"Slow and unhurried (about {speaking_rate:g}x normal speed)"
    if speaking_rate >= 1.15:
        return f"Brisk (about {speaking_rate:g}x normal speed)"
    return "Measured, natural reading speed"


def _describe_pitch(pitch: float) -> str:
    if pitch <= -2:
        return f"Lower than your natural register ({pitch:g} semitones)"
    if pitch >= 2:
        return f"Higher than your natural register (+{pitch:g} semitones)"
    return "Your natural register"


def pcm_to_wav(pcm: bytes) -> bytes:
    """Wrap raw Gemini PCM in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(CHANNELS)
        wf.setsampwidth(SAMPLE_WIDTH)
        wf.setframerate(SAMPLE_RATE)
        wf.writeframes(pcm)
    return buffer.getvalue()


class GeminiSpeechSynthesizer(SpeechSynthesizer):
    """Narrates page text with Gemini TTS using a fixed voice configuration."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.5-flash-preview-tts",
        voice: str = "Charon",
        language_code: str = "en-US",
        speaking_rate: float = 1.0,
        pitch: float = 0.0,
        max_chars: int = DEFAULT_MAX_CHARS,
        client: Optional[genai.Client] = None,
    ):
        self.model = model
        self.voice = voice
        self.language_code = language_code
        self.max_chars = max_chars
        self.style_prompt = NARRATOR_PROMPT.format(
            pace=_describe_rate(speaking_rate),
            pitch=_describe_pitch(pitch),
        )

        if client is None and not api_key:
            raise SynthesisError("Gemini API key required. Set GOOGLE_API_KEY environment variable.")
        self.client = client or genai.Client(api_key=api_key)

        self.speech_config = types.SpeechConfig(
            language_code=language_code,
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(
                    voice_name=voice,
                )
            ),
        )

    def _extract_pcm(self, response) -> bytes:
        audio_data = b""
        candidates = getattr(response, "candidates", None)
        # Blocked generations come back with a candidate but no content.
        content = candidates[0].content if candidates else None
        if content is not None and content.parts:
            for part in content.parts:
                if hasattr(part, "inline_data") and part.inline_data:
                    data = part.inline_data.data
                    if isinstance(data, str):
                        data = base64.b64decode(data)
                    audio_data += data
        return audio_data

    def synthesize(self, text: str) -> bytes:
        if len(text) > self.max_chars:
            raise SynthesisError(
                f"Text of {len(text)} characters exceeds the {self.max_chars} character limit"
            )

        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=f"{self.style_prompt}{text}",
                config=types.GenerateContentConfig(
                    response_modalities=["AUDIO"],
                    speech_config=self.speech_config,
                ),
            )
        except Exception as e:
            logger.error(f"Gemini TTS request failed: {e}")
            raise SynthesisError(f"Failed to call Gemini text-to-speech: {e}") from e

        pcm = self._extract_pcm(response)
        if not pcm:
            raise SynthesisError("Gemini text-to-speech returned no audio")

        logger.info(f"Generated {len(pcm)} bytes of audio from {len(text)} characters of text")
        return pcm_to_wav(pcm)
