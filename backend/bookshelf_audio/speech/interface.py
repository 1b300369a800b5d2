import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional

from ..errors import SynthesisError

DEFAULT_MAX_CHARS = 5000


class SpeechSynthesizer(ABC):
    """Abstract interface for narration backends (Gemini TTS, test fakes, ...)."""

    max_chars: int = DEFAULT_MAX_CHARS

    @abstractmethod
    def synthesize(self, text: str) -> bytes:
        """
        Narrate ``text`` with the configured voice.

        Returns:
            Complete audio file bytes.

        Raises:
            SynthesisError: the backend failed, is unreachable, or ``text``
                exceeds ``max_chars``.
        """
        pass


def prepare_text(text: str, max_chars: int) -> tuple[str, bool]:
    """Cut ``text`` to the backend limit. Returns the text and whether it was cut."""
    if len(text) <= max_chars:
        return text, False
    return text[:max_chars], True


def synthesize_with_timeout(
    synthesizer: SpeechSynthesizer, text: str, timeout: Optional[float]
) -> bytes:
    """Run ``synthesizer.synthesize`` and give up waiting after ``timeout`` seconds.

    The backend call itself cannot be interrupted; on expiry it is left to
    finish on its daemon thread and its result is discarded.
    """
    if timeout is None or timeout <= 0:
        return synthesizer.synthesize(text)

    future: Future = Future()

    def _run() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(synthesizer.synthesize(text))
        except BaseException as exc:
            future.set_exception(exc)

    threading.Thread(target=_run, name="tts-request", daemon=True).start()
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        raise SynthesisError(f"Speech synthesis timed out after {timeout:g}s") from None
