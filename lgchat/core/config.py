"""Unified configuration of the chat client."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from lgchat.config.paths import config_dir


CredentialMode = Literal["store", "constant"]


class Settings(BaseSettings):
    """Global parameters of the client."""

    model_config = SettingsConfigDict(
        env_prefix="LGCHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Remote generation endpoint
    api_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-2.0-flash"

    # Credential
    credential_mode: CredentialMode = "store"
    api_key: str | None = None
    secret_name: str = "gemini_api_key"
    secrets_path: str | None = None

    # Sampling (omitted from the request when disabled)
    sampling_enabled: bool = True
    temperature: float = 0.7
    max_output_tokens: int = 800
    top_p: float = 0.8
    top_k: int = 40

    # Text-to-speech
    tts_enabled: bool = True
    tts_language: str = "en-US"
    tts_pitch: float = 1.0
    tts_speech_rate: float = 0.5
    tts_voice: str = "en-US-piper/en/en_US/lessac/medium"
    tts_voices: dict[str, str] = {}

    # Logs
    log_dir: str | None = None
    log_rotate_mb: int = 5
    log_retention_days: int = 7
    log_level: str = "INFO"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls.json_config_settings_source,
            file_secret_settings,
        )

    @staticmethod
    def json_config_settings_source() -> dict[str, object]:
        """Load config.json from the user config folder when present."""
        config_path = config_dir() / "config.json"
        if config_path.is_file():
            try:
                data = json.loads(config_path.read_text(encoding="utf-8"))
            except ValueError:
                return {}
            return data if isinstance(data, dict) else {}
        return {}

    def voice_for(self, language: str) -> str:
        """Return the Piper voice folder registered for ``language``."""
        return self.tts_voices.get(language) or self.tts_voice


@lru_cache()
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
