"""Estimated per-word timings for read-along highlighting.

These are not measured from the narration audio. Every word gets a duration
derived from an average speaking rate of about 150 words per minute, nudged by
word length, so highlighting drifts on long pages. Real forced alignment would
replace this, not refine it.
"""

from ..models.audio import WordTiming

SECONDS_PER_WORD = 0.4
LENGTH_FACTOR = 0.02
AVERAGE_WORD_LENGTH = 5
MIN_WORD_SECONDS = 0.2
MAX_WORD_SECONDS = 1.0


def estimate_word_duration(word: str) -> float:
    duration = SECONDS_PER_WORD * (1.0 + (len(word) - AVERAGE_WORD_LENGTH) * LENGTH_FACTOR)
    return max(MIN_WORD_SECONDS, min(duration, MAX_WORD_SECONDS))


def estimate_word_timings(text: str) -> list[WordTiming]:
    """Split ``text`` on whitespace and lay the words out back to back from 0s."""
    timings: list[WordTiming] = []
    current_time = 0.0
    for word in text.split():
        duration = estimate_word_duration(word)
        timings.append(
            WordTiming(word=word, start_time=current_time, end_time=current_time + duration)
        )
        current_time += duration
    return timings
