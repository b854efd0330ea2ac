"""Text-to-speech helpers using Piper."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from piper import PiperVoice, SynthesisConfig

from ..core.errors import SpeechError
from .engine import sanitize_text


@dataclass(slots=True)
class PiperConfig:
    """Piper model configuration."""

    model_path: Path
    config_path: Path
    speaker_id: int | None = None
    length_scale: float = 1.0
    noise_scale: float = 0.667


class PiperTTS:
    """Thin wrapper around PiperVoice."""

    def __init__(self, config: PiperConfig) -> None:
        self.config = config
        self._voice = self._load_voice(config)

    def synthesize_stream(self, text: str) -> Iterator[tuple[bytes, int, int]]:
        """Yield audio chunks (bytes, sample_rate, channels)."""
        text = sanitize_text(text)
        if not text:
            return
        kwargs = {}
        if self.config.speaker_id is not None:
            kwargs["speaker_id"] = self.config.speaker_id
        if self.config.length_scale != 1.0:
            kwargs["length_scale"] = self.config.length_scale
        if self.config.noise_scale > 0:
            kwargs["noise_scale"] = self.config.noise_scale
        syn_config = SynthesisConfig(**kwargs) if kwargs else None
        for chunk in self._voice.synthesize(text, syn_config=syn_config):
            yield chunk.audio_int16_bytes, chunk.sample_rate, chunk.sample_channels or 1

    @classmethod
    def from_directory(cls, root: Path, *, length_scale: float, noise_scale: float) -> "PiperTTS":
        """Load the first Piper voice found under ``root``."""
        model_path = _find_file(root, ".onnx")
        config_path = _find_file(root, ".onnx.json")
        return cls(
            PiperConfig(
                model_path=model_path,
                config_path=config_path,
                length_scale=length_scale,
                noise_scale=noise_scale,
            )
        )

    @staticmethod
    def _load_voice(config: PiperConfig) -> PiperVoice:
        if not config.model_path.exists():
            raise SpeechError(f"Piper model not found: {config.model_path}")
        if not config.config_path.exists():
            raise SpeechError(f"Piper config not found: {config.config_path}")
        return PiperVoice.load(str(config.model_path), config_path=str(config.config_path))


def _find_file(root: Path, extension: str) -> Path:
    if root.exists():
        for candidate in sorted(root.rglob(f"*{extension}")):
            return candidate
    raise SpeechError(f"No {extension} file under {root}")

