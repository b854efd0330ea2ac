"""Error taxonomy of the chat client."""

from __future__ import annotations


class LgChatError(Exception):
    """Base class for every error raised by lgchat."""


class MissingCredential(LgChatError):
    """No API key is configured; the user must open the settings."""

    def __init__(self, name: str) -> None:
        super().__init__("Please set your API key in settings")
        self.name = name


class GenerationError(LgChatError):
    """A completion request did not produce generated text."""


class MalformedResponse(GenerationError):
    """The endpoint answered 200 without the expected candidate payload."""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__("Invalid response format from API")
        self.detail = detail


class RemoteError(GenerationError):
    """The endpoint answered with a non-200 status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class TransportError(GenerationError):
    """The request never got an HTTP answer (DNS, connect, timeout, reset)."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Network error: {str(cause) or cause.__class__.__name__}")
        self.cause = cause


class SecretStoreError(LgChatError):
    """The credential could not be written to the local store."""


class SpeechError(LgChatError):
    """Text-to-speech could not start (missing voice, audio device failure)."""
