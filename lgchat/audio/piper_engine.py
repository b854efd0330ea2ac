"""Piper speech engine playing through sounddevice."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Callable, Optional

from ..config.paths import models_dir
from ..core.config import Settings
from ..core.errors import SpeechError
from ..core.logger import speech as log
from .engine import CompletionHandler, pcm_duration, pitch_to_noise_scale, rate_to_length_scale, sanitize_text

if TYPE_CHECKING:
    from .playback import SpeechPlayback
    from .tts import PiperTTS


# Extra wait covering output buffering after the last chunk is queued.
_PLAYBACK_GUARD_SECONDS = 0.15


class PiperSpeechEngine:
    """Piper synthesis played through sounddevice.

    Loading the voice, synthesis and playback all run on a worker thread per
    utterance, so ``speak`` never blocks the caller.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        playback: Optional["SpeechPlayback"] = None,
        loader: Optional[Callable[[str, float, float], "PiperTTS"]] = None,
    ) -> None:
        self.settings = settings
        self._language = settings.tts_language
        self._pitch = settings.tts_pitch
        self._rate = settings.tts_speech_rate
        if playback is None:
            from .playback import PlaybackConfig, SpeechPlayback

            playback = SpeechPlayback(PlaybackConfig())
        self._playback = playback
        self._loader = loader or self._load_voice
        self._tts: Optional["PiperTTS"] = None
        self._tts_lock = threading.Lock()
        self._voice_version = 0
        self._handler: Optional[CompletionHandler] = None
        self._state_lock = threading.Lock()
        self._utterance = 0
        self._cancel: Optional[threading.Event] = None
        self._worker: Optional[threading.Thread] = None

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #
    def set_language(self, language: str) -> None:
        if language != self._language:
            self._language = language
            self._invalidate_voice()

    def set_pitch(self, pitch: float) -> None:
        if pitch != self._pitch:
            self._pitch = pitch
            self._invalidate_voice()

    def set_speech_rate(self, rate: float) -> None:
        if rate != self._rate:
            self._rate = rate
            self._invalidate_voice()

    def set_completion_handler(self, handler: Optional[CompletionHandler]) -> None:
        self._handler = handler

    # ------------------------------------------------------------------ #
    # Playback
    # ------------------------------------------------------------------ #
    def speak(self, text: str) -> None:
        """Start a new utterance, cancelling the current one."""
        self.stop()
        cancel = threading.Event()
        with self._state_lock:
            self._utterance += 1
            utterance = self._utterance
            self._cancel = cancel
        worker = threading.Thread(
            target=self._run_utterance,
            args=(sanitize_text(text), utterance, cancel, self._handler),
            name=f"lgchat-tts-{utterance}",
            daemon=True,
        )
        self._worker = worker
        worker.start()

    def stop(self) -> None:
        """Stop the current utterance; its completion will not be reported."""
        with self._state_lock:
            if self._cancel is not None:
                self._cancel.set()
                self._cancel = None
            self._utterance += 1
        self._playback.stop()

    def release(self) -> None:
        """Stop playback and drop the loaded voice."""
        self.stop()
        self._handler = None
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=1)
        self._worker = None
        self._invalidate_voice()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _run_utterance(
        self,
        text: str,
        utterance: int,
        cancel: threading.Event,
        handler: Optional[CompletionHandler],
    ) -> None:
        total_seconds = 0.0
        error: Optional[Exception] = None
        try:
            tts = self._ensure_tts()
            for pcm_bytes, sample_rate, channels in tts.synthesize_stream(text):
                if cancel.is_set():
                    return
                if not pcm_bytes:
                    continue
                self._playback.play(pcm_bytes, sample_rate, channels)
                total_seconds += pcm_duration(len(pcm_bytes), sample_rate, channels)
            if total_seconds > 0 and cancel.wait(total_seconds + _PLAYBACK_GUARD_SECONDS):
                return
        except SpeechError as exc:
            log.error("speech unavailable: %s", exc, extra={"utterance": utterance})
            error = exc
        except Exception as exc:
            log.exception("speech synthesis failed", extra={"utterance": utterance})
            error = exc
        self._complete(utterance, handler, error)

    def _complete(
        self,
        utterance: int,
        handler: Optional[CompletionHandler],
        error: Optional[Exception],
    ) -> None:
        with self._state_lock:
            if utterance != self._utterance:
                return
            self._cancel = None
        if handler is not None:
            handler(error)

    def _ensure_tts(self) -> "PiperTTS":
        with self._tts_lock:
            if self._tts is not None:
                return self._tts
            version = self._voice_version
            voice = self.settings.voice_for(self._language)
            length_scale = rate_to_length_scale(self._rate)
            noise_scale = pitch_to_noise_scale(self._pitch)
        # Loaded outside the lock; an invalidation during the load drops the result.
        tts = self._loader(voice, length_scale, noise_scale)
        log.info("voice loaded: %s", voice)
        with self._tts_lock:
            if version == self._voice_version:
                self._tts = tts
        return tts

    def _invalidate_voice(self) -> None:
        with self._tts_lock:
            self._voice_version += 1
            self._tts = None

    @staticmethod
    def _load_voice(voice: str, length_scale: float, noise_scale: float) -> "PiperTTS":
        base = models_dir() / "tts" / voice
        try:
            from .tts import PiperTTS

            return PiperTTS.from_directory(base, length_scale=length_scale, noise_scale=noise_scale)
        except SpeechError:
            raise
        except Exception as exc:
            raise SpeechError(f"Unable to load voice {voice}: {exc}") from exc
