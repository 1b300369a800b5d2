from .errors import (
    BookNotFoundError,
    BookshelfAudioError,
    InvalidRangeError,
    JobConflictError,
    NotFoundError,
    ProcessingError,
    StorageError,
    SynthesisError,
)
from .services.audio_cache import AudioCache
from .services.batch_generation import BatchAudioGenerator
from .services.word_timing import estimate_word_timings

__version__ = "0.1.0"

__all__ = [
    "AudioCache",
    "BatchAudioGenerator",
    "BookNotFoundError",
    "BookshelfAudioError",
    "InvalidRangeError",
    "JobConflictError",
    "NotFoundError",
    "ProcessingError",
    "StorageError",
    "SynthesisError",
    "estimate_word_timings",
]
