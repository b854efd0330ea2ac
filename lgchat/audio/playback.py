"""Speaker output for synthesized speech."""

from __future__ import annotations

import threading
from dataclasses import dataclass

import sounddevice as sd

from ..core.errors import SpeechError
from ..core.logger import speech as log


@dataclass(slots=True)
class PlaybackConfig:
    """Output stream format and device."""

    sample_rate: int = 22_050
    channels: int = 1
    device_name: str | None = None


class SpeechPlayback:
    """Feed queued PCM bytes to a sounddevice output stream.

    The stream is opened lazily and reopened whenever an utterance arrives
    with another sample rate or channel count.
    """

    def __init__(self, config: PlaybackConfig | None = None) -> None:
        self.config = config or PlaybackConfig()
        self._pending = bytearray()
        self._lock = threading.RLock()
        self._stream: sd.RawOutputStream | None = None

    @property
    def pending_bytes(self) -> int:
        with self._lock:
            return len(self._pending)

    def play(self, pcm_data: bytes, sample_rate: int, channels: int) -> None:
        """Queue ``pcm_data`` for output."""
        if not pcm_data:
            return
        with self._lock:
            if (sample_rate, channels) != (self.config.sample_rate, self.config.channels):
                self._pending.clear()
                self._close_stream()
                self.config.sample_rate = sample_rate
                self.config.channels = channels
            self._pending.extend(pcm_data)
            self._open_stream()

    def stop(self) -> None:
        """Drop queued audio and close the stream."""
        with self._lock:
            self._pending.clear()
            self._close_stream()

    def _open_stream(self) -> None:
        if self._stream is None:
            try:
                self._stream = sd.RawOutputStream(
                    samplerate=self.config.sample_rate,
                    channels=self.config.channels,
                    dtype="int16",
                    callback=self._fill,
                    device=self.config.device_name,
                )
            except sd.PortAudioError as exc:
                self._pending.clear()
                raise SpeechError(f"Audio output unavailable: {exc}") from exc
        if not self._stream.active:
            self._stream.start()

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()

    def _fill(self, outdata, frames: int, time, status) -> None:  # noqa: ANN001
        if status:  # pragma: no cover
            log.warning("audio status: %s", status)
        wanted = len(outdata)
        with self._lock:
            count = min(wanted, len(self._pending))
            outdata[:count] = self._pending[:count]
            del self._pending[:count]
        if count < wanted:
            outdata[count:] = bytes(wanted - count)

