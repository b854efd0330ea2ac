"""Speech engines driven by the conversation controller."""

from __future__ import annotations

import re
import unicodedata
from typing import Callable, Optional, Protocol

from ..core.config import Settings


# Receives the exception that ended the utterance, or None once it was played.
CompletionHandler = Callable[[Optional[Exception]], None]


class SpeechEngine(Protocol):
    """Text-to-speech collaborator.

    ``speak`` returns immediately; the completion handler fires later, from
    any thread, once the utterance has been played or has failed. The handler
    registered when ``speak`` is called is the one notified for that
    utterance. A stopped utterance never reports completion.
    """

    def set_language(self, language: str) -> None: ...

    def set_pitch(self, pitch: float) -> None: ...

    def set_speech_rate(self, rate: float) -> None: ...

    def set_completion_handler(self, handler: Optional[CompletionHandler]) -> None: ...

    def speak(self, text: str) -> None: ...

    def stop(self) -> None: ...

    def release(self) -> None: ...


def rate_to_length_scale(rate: float) -> float:
    """Map a speech rate (0.5 = normal) to Piper's length scale."""
    if rate <= 0:
        return 1.0
    return max(0.5, min(2.0, 0.5 / rate))


def pitch_to_noise_scale(pitch: float) -> float:
    """Map a pitch factor (1.0 = neutral) to Piper's noise scale."""
    return max(0.1, min(2.0, 0.667 * pitch))


def pcm_duration(length_bytes: int, sample_rate: int, channels: int) -> float:
    """Return the play time in seconds of ``length_bytes`` of pcm_s16le audio."""
    if length_bytes <= 0 or sample_rate <= 0:
        return 0.0
    return length_bytes / (sample_rate * max(1, channels) * 2)


def sanitize_text(text: str) -> str:
    """Drop markdown markers and combining marks Piper cannot pronounce."""
    cleaned = re.sub(r"[*_`#<>]", " ", text)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    normalized = unicodedata.normalize("NFD", cleaned)
    stripped = "".join(ch for ch in normalized if unicodedata.category(ch) != "Mn")
    return unicodedata.normalize("NFC", stripped)


class SilentSpeechEngine:
    """Engine without audio output; every utterance completes at once."""

    def __init__(self) -> None:
        self.language = "en-US"
        self.pitch = 1.0
        self.rate = 0.5
        self.spoken: list[str] = []
        self._handler: Optional[CompletionHandler] = None

    def set_language(self, language: str) -> None:
        self.language = language

    def set_pitch(self, pitch: float) -> None:
        self.pitch = pitch

    def set_speech_rate(self, rate: float) -> None:
        self.rate = rate

    def set_completion_handler(self, handler: Optional[CompletionHandler]) -> None:
        self._handler = handler

    def speak(self, text: str) -> None:
        self.spoken.append(text)
        if self._handler is not None:
            self._handler(None)

    def stop(self) -> None:
        return None

    def release(self) -> None:
        self._handler = None


def build_speech_engine(settings: Settings) -> SpeechEngine:
    """Return the Piper engine, or a silent one when speech is disabled."""
    if not settings.tts_enabled:
        return SilentSpeechEngine()
    from .piper_engine import PiperSpeechEngine

    return PiperSpeechEngine(settings)
