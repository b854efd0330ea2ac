"""Orchestrates submission, completion requests and speech playback."""

from __future__ import annotations

import asyncio
import functools
import threading
from concurrent.futures import Future
from typing import Callable, Optional

from ..audio.engine import SpeechEngine
from ..config.credentials import CredentialSource, require_credential
from ..core.config import Settings
from ..core.errors import GenerationError, MalformedResponse, MissingCredential
from ..core.logger import conversation as log
from ..core.trace import new_trace_id
from ..services.api import CompletionClient
from ..services.prompts import format_prompt
from ..services.schemas import Message, Notice, Origin, SubmitStatus
from ..state.app_state import ConversationState, StateSnapshot


ChangeCallback = Callable[[StateSnapshot], None]
NoticeCallback = Callable[[Notice], None]
ClearInputCallback = Callable[[], None]

BUSY_NOTICE = "Please wait for the current response"


class ConversationController:
    """Owns the conversation log and drives submit -> request -> response -> speak.

    Every state mutation happens on ``self.loop``. Views register callbacks
    with :meth:`attach_view` and call the ``*_threadsafe`` helpers from their
    own thread.
    """

    def __init__(
        self,
        settings: Settings,
        credentials: CredentialSource,
        client: CompletionClient,
        speech: SpeechEngine,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.settings = settings
        self.credentials = credentials
        self.client = client
        self.speech = speech
        self.state = ConversationState()
        if loop is not None:
            self.loop = loop
            self._owns_loop = False
            self._loop_thread: Optional[threading.Thread] = None
        else:
            self.loop = asyncio.new_event_loop()
            self._owns_loop = True
            self._loop_thread = threading.Thread(target=self._run_loop, name="lgchat-loop", daemon=True)
            self._loop_thread.start()

        self._change_callback: Optional[ChangeCallback] = None
        self._notice_callback: Optional[NoticeCallback] = None
        self._clear_input_callback: Optional[ClearInputCallback] = None
        self._closed = False
        self._closing: Optional[Future[None]] = None
        self._speech_generation = 0

        self._acquire_speech()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def attach_view(
        self,
        *,
        on_change: Optional[ChangeCallback] = None,
        on_notice: Optional[NoticeCallback] = None,
        clear_input: Optional[ClearInputCallback] = None,
    ) -> None:
        """Register the view callbacks."""
        self._change_callback = on_change
        self._notice_callback = on_notice
        self._clear_input_callback = clear_input

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> StateSnapshot:
        return self.state.snapshot()

    async def submit(self, text: str) -> SubmitStatus:
        """Send ``text`` to the model and record the exchange."""
        if not text:
            return SubmitStatus.IGNORED
        if self._closed:
            return SubmitStatus.DISCARDED
        if self.state.is_loading:
            self._emit_notice(Notice(BUSY_NOTICE))
            return SubmitStatus.BUSY
        try:
            credential = require_credential(self.credentials, self.settings.secret_name)
        except MissingCredential as exc:
            log.info("submit refused: no credential configured")
            self._emit_notice(Notice(str(exc), action="open_settings"))
            return SubmitStatus.MISSING_CREDENTIAL

        new_trace_id()
        self._emit_clear_input()
        self.state.append(Message(text=text, origin=Origin.USER))
        self.state.is_loading = True
        self._emit_change()
        log.info("request dispatched", extra={"chars": len(text)})

        status = SubmitStatus.FAILED
        try:
            generated = await self.client.generate(format_prompt(text), credential)
            if self._closed:
                status = SubmitStatus.DISCARDED
                return status
            self.state.append(Message(text=generated, origin=Origin.ASSISTANT))
            self._emit_change()
            self.speak(generated)
            status = SubmitStatus.COMPLETED
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self._closed:
                status = SubmitStatus.DISCARDED
                return status
            self._record_failure(exc)
        finally:
            self.state.is_loading = False
            self._emit_change()
            log.info("request resolved", extra={"outcome": status.value})
        return status

    def speak(self, text: str) -> None:
        """Speak ``text``, or stop the current utterance when already speaking."""
        if self._closed:
            return
        if self.state.is_speaking:
            self.stop_speaking()
            return
        self._speech_generation += 1
        self.state.is_speaking = True
        self._emit_change()
        self.speech.set_completion_handler(functools.partial(self._on_speech_complete, self._speech_generation))
        try:
            self.speech.speak(text)
        except Exception as exc:
            log.warning("speech failed to start: %s", exc)
            self._speech_generation += 1
            self.state.is_speaking = False
            self._emit_change()
            self._emit_notice(Notice(f"Error: {exc}", level="error"))

    def stop_speaking(self) -> None:
        """Stop playback and clear the speaking flag."""
        self._speech_generation += 1
        self.speech.stop()
        self.state.is_speaking = False
        self._emit_change()

    def submit_threadsafe(self, text: str) -> Future[SubmitStatus]:
        """Schedule :meth:`submit` on the controller loop from another thread."""
        return asyncio.run_coroutine_threadsafe(self.submit(text), self.loop)

    def speak_threadsafe(self, text: str) -> None:
        """Schedule :meth:`speak` on the controller loop from another thread."""
        self.loop.call_soon_threadsafe(self.speak, text)

    async def aclose(self) -> None:
        """Tear down: later updates become no-ops, speech stops, HTTP closes."""
        if self._closed:
            return
        self._closed = True
        self._release_speech()
        await self.client.aclose()
        log.info("controller closed")

    def shutdown(self) -> Optional[Future[None]]:
        """Tear down from the view thread and stop the owned loop.

        With a caller-supplied loop the teardown is only scheduled; the
        returned future resolves once :meth:`aclose` has finished.
        """
        if not self._owns_loop:
            if self._closing is None:
                self._closing = asyncio.run_coroutine_threadsafe(self.aclose(), self.loop)
            return self._closing
        if self.loop.is_closed():
            return None
        future = asyncio.run_coroutine_threadsafe(self.aclose(), self.loop)
        try:
            future.result(timeout=2)
        except Exception:
            log.exception("controller teardown failed")
        if self._loop_thread:
            self.loop.call_soon_threadsafe(self.loop.stop)
            self._loop_thread.join(timeout=1)
            if not self._loop_thread.is_alive():
                self.loop.close()
            self._loop_thread = None
        return None

    # ------------------------------------------------------------------ #
    # Speech engine lifecycle
    # ------------------------------------------------------------------ #
    def _acquire_speech(self) -> None:
        self.speech.set_language(self.settings.tts_language)
        self.speech.set_pitch(self.settings.tts_pitch)
        self.speech.set_speech_rate(self.settings.tts_speech_rate)
        self.speech.set_completion_handler(functools.partial(self._on_speech_complete, self._speech_generation))

    def _release_speech(self) -> None:
        self.speech.set_completion_handler(None)
        self.speech.stop()
        self.speech.release()
        self.state.is_speaking = False

    def _on_speech_complete(self, generation: int, error: Optional[Exception] = None) -> None:
        """Engine completion hook bound to one utterance; may run on any thread."""
        try:
            self.loop.call_soon_threadsafe(self._handle_speech_complete, generation, error)
        except RuntimeError:
            # Loop already closed during teardown.
            pass

    def _handle_speech_complete(self, generation: int, error: Optional[Exception]) -> None:
        if self._closed or generation != self._speech_generation:
            return
        self.state.is_speaking = False
        self._emit_change()
        if error is not None:
            self._emit_notice(Notice(f"Error: {error}", level="error"))

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _record_failure(self, exc: Exception) -> None:
        if isinstance(exc, MalformedResponse) and exc.detail:
            log.warning("request failed: %s (%s)", exc, exc.detail)
        elif isinstance(exc, GenerationError):
            log.warning("request failed: %s", exc)
        else:
            log.exception("unexpected failure during submit")
        details = str(exc) or exc.__class__.__name__
        self.state.append(Message(text=f"Error: {details}", origin=Origin.ASSISTANT))
        self._emit_change()
        self._emit_notice(Notice(f"Error: {details}", level="error"))

    def _emit_change(self) -> None:
        if self._closed or self._change_callback is None:
            return
        self._change_callback(self.state.snapshot())

    def _emit_notice(self, notice: Notice) -> None:
        if self._closed or self._notice_callback is None:
            return
        self._notice_callback(notice)

    def _emit_clear_input(self) -> None:
        if self._closed or self._clear_input_callback is None:
            return
        self._clear_input_callback()

    def _run_loop(self) -> None:
        """Run the owned asyncio loop in a dedicated thread."""
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()
