import asyncio
import logging
import threading

import httpx
import pytest

from lgchat.config.credentials import ConstantCredentialSource
from lgchat.core.config import Settings
from lgchat.core.errors import MalformedResponse, RemoteError, SpeechError, TransportError
from lgchat.runtime.controller import BUSY_NOTICE, ConversationController
from lgchat.services.api import CompletionClient
from lgchat.services.prompts import format_prompt
from lgchat.services.schemas import Origin, SubmitStatus


class DummyClient:
    def __init__(self, result: str = "", error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[str, str]] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def generate(self, prompt_text: str, credential: str) -> str:
        self.calls.append((prompt_text, credential))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result

    async def aclose(self) -> None:
        self.closed = True


class DummySpeech:
    def __init__(self, fail_with: Exception | None = None) -> None:
        self.config: dict[str, object] = {}
        self.spoken: list[str] = []
        self.stops = 0
        self.released = False
        self.handler = None
        self.utterance_handlers: list = []
        self.fail_with = fail_with

    def set_language(self, language: str) -> None:
        self.config["language"] = language

    def set_pitch(self, pitch: float) -> None:
        self.config["pitch"] = pitch

    def set_speech_rate(self, rate: float) -> None:
        self.config["rate"] = rate

    def set_completion_handler(self, handler) -> None:
        self.handler = handler

    def speak(self, text: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.spoken.append(text)
        self.utterance_handlers.append(self.handler)

    def stop(self) -> None:
        self.stops += 1

    def release(self) -> None:
        self.released = True

    def finish(self, error: Exception | None = None) -> None:
        if self.handler is not None:
            self.handler(error)


class Recorder:
    def __init__(self) -> None:
        self.snapshots = []
        self.notices = []
        self.cleared = 0

    def attach(self, controller: ConversationController) -> None:
        controller.attach_view(
            on_change=self.snapshots.append,
            on_notice=self.notices.append,
            clear_input=self._clear,
        )

    def _clear(self) -> None:
        self.cleared += 1


def _controller(client, *, credential: str | None = "k1", speech: DummySpeech | None = None):
    speech = speech or DummySpeech()
    controller = ConversationController(
        Settings(),
        ConstantCredentialSource(credential),
        client,
        speech,
        loop=asyncio.get_running_loop(),
    )
    recorder = Recorder()
    recorder.attach(controller)
    return controller, speech, recorder


@pytest.mark.asyncio
async def test_submit_success_appends_user_then_assistant():
    client = DummyClient(result="Hello there")
    controller, speech, recorder = _controller(client)

    status = await controller.submit("Hi")

    assert status is SubmitStatus.COMPLETED
    messages = controller.state.messages
    assert [(m.origin, m.text) for m in messages] == [(Origin.USER, "Hi"), (Origin.ASSISTANT, "Hello there")]
    assert messages[0].timestamp <= messages[1].timestamp
    assert controller.state.is_loading is False
    assert client.calls == [(format_prompt("Hi"), "k1")]
    assert speech.spoken == ["Hello there"]
    assert recorder.cleared == 1
    assert recorder.notices == []


@pytest.mark.asyncio
async def test_submit_empty_text_is_a_no_op():
    client = DummyClient(result="unused")
    controller, speech, recorder = _controller(client)

    status = await controller.submit("")

    assert status is SubmitStatus.IGNORED
    assert controller.state.messages == []
    assert controller.state.is_loading is False
    assert controller.state.is_speaking is False
    assert client.calls == []
    assert recorder.snapshots == [] and recorder.notices == []


@pytest.mark.asyncio
@pytest.mark.parametrize("credential", [None, "", "   "])
async def test_submit_without_credential_stays_offline(credential):
    client = DummyClient(result="unused")
    controller, _speech, recorder = _controller(client, credential=credential)

    status = await controller.submit("What time is it?")

    assert status is SubmitStatus.MISSING_CREDENTIAL
    assert controller.state.messages == []
    assert controller.state.is_loading is False
    assert client.calls == []
    assert recorder.cleared == 0
    assert len(recorder.notices) == 1
    notice = recorder.notices[0]
    assert notice.text == "Please set your API key in settings"
    assert notice.action == "open_settings"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, rendered",
    [
        (RemoteError(403, "Permission denied"), "Error: Error 403: Permission denied"),
        (RemoteError(500, "Internal"), "Error: Error 500: Internal"),
        (MalformedResponse(), "Error: Invalid response format from API"),
        (TransportError(OSError("connection reset")), "Error: Network error: connection reset"),
        (ValueError("boom"), "Error: boom"),
    ],
)
async def test_submit_failure_logs_assistant_error(error, rendered):
    client = DummyClient(error=error)
    controller, speech, recorder = _controller(client)

    status = await controller.submit("Hi")

    assert status is SubmitStatus.FAILED
    assistant = [m for m in controller.state.messages if m.origin is Origin.ASSISTANT]
    assert [m.text for m in assistant] == [rendered]
    assert len(controller.state.messages) == 2
    assert controller.state.is_loading is False
    assert speech.spoken == []
    assert [(n.text, n.level) for n in recorder.notices] == [(rendered, "error")]


@pytest.mark.asyncio
async def test_is_loading_while_request_in_flight_and_second_submit_is_busy():
    client = DummyClient(result="done")
    client.gate = asyncio.Event()
    controller, _speech, recorder = _controller(client)

    task = asyncio.create_task(controller.submit("first"))
    await asyncio.sleep(0)
    assert controller.state.is_loading is True

    second = await controller.submit("second")
    assert second is SubmitStatus.BUSY
    assert [m.text for m in controller.state.messages] == ["first"]
    assert recorder.notices[-1].text == BUSY_NOTICE

    client.gate.set()
    assert await task is SubmitStatus.COMPLETED
    assert controller.state.is_loading is False
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_speak_toggles_instead_of_queueing():
    controller, speech, _recorder = _controller(DummyClient())

    controller.speak("first")
    assert controller.state.is_speaking is True

    controller.speak("second")

    assert controller.state.is_speaking is False
    assert speech.spoken == ["first"]
    assert speech.stops == 1


@pytest.mark.asyncio
async def test_engine_completion_clears_speaking():
    controller, speech, recorder = _controller(DummyClient())

    controller.speak("hello")
    speech.finish()
    await asyncio.sleep(0)

    assert controller.state.is_speaking is False
    assert [s.is_speaking for s in recorder.snapshots] == [True, False]


@pytest.mark.asyncio
async def test_engine_completion_from_worker_thread():
    controller, speech, _recorder = _controller(DummyClient())

    controller.speak("hello")
    worker = threading.Thread(target=speech.finish)
    worker.start()
    worker.join()
    await asyncio.sleep(0.05)

    assert controller.state.is_speaking is False


@pytest.mark.asyncio
async def test_stale_completion_does_not_end_new_utterance():
    controller, speech, _recorder = _controller(DummyClient())

    controller.speak("first")
    speech.finish()
    controller.stop_speaking()
    controller.speak("second")
    await asyncio.sleep(0)

    assert controller.state.is_speaking is True
    assert speech.spoken == ["first", "second"]


@pytest.mark.asyncio
async def test_speech_failure_resets_flag_and_notifies():
    speech = DummySpeech(fail_with=SpeechError("Piper model not found"))
    controller, _speech, recorder = _controller(DummyClient(), speech=speech)

    controller.speak("hello")

    assert controller.state.is_speaking is False
    assert recorder.notices[-1].level == "error"
    assert "Piper model not found" in recorder.notices[-1].text


@pytest.mark.asyncio
async def test_speech_engine_configured_on_construction():
    controller, speech, _recorder = _controller(DummyClient())

    assert speech.config == {"language": "en-US", "pitch": 1.0, "rate": 0.5}
    assert speech.handler is not None
    await controller.aclose()


@pytest.mark.asyncio
async def test_aclose_stops_speech_and_guards_late_updates():
    client = DummyClient(result="late answer")
    client.gate = asyncio.Event()
    controller, speech, recorder = _controller(client)

    task = asyncio.create_task(controller.submit("question"))
    await asyncio.sleep(0)
    controller.speak("still talking")
    await controller.aclose()
    seen = len(recorder.snapshots)

    client.gate.set()
    status = await task

    assert status is SubmitStatus.DISCARDED
    assert [m.text for m in controller.state.messages] == ["question"]
    assert len(recorder.snapshots) == seen
    assert speech.released is True
    assert speech.stops >= 1
    assert speech.handler is None
    assert client.closed is True
    assert await controller.submit("again") is SubmitStatus.DISCARDED


@pytest.mark.asyncio
async def test_round_trip_through_http_client(gemini_success_body):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=gemini_success_body("T"))

    client = CompletionClient(Settings(), transport=httpx.MockTransport(handler))
    controller, _speech, _recorder = _controller(client)

    await controller.submit("anything")

    assert len(requests) == 1
    assert controller.state.messages[-1].origin is Origin.ASSISTANT
    assert controller.state.messages[-1].text == "T"
    await controller.aclose()


@pytest.mark.asyncio
async def test_capital_of_france_scenario(gemini_success_body):
    answer = "Paris is the capital.[48.8566°N, 2.3522°E]"

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["key"] == "k1"
        return httpx.Response(200, json=gemini_success_body(answer))

    client = CompletionClient(Settings(), transport=httpx.MockTransport(handler))
    controller, speech, recorder = _controller(client, credential="k1")

    status = await controller.submit("What is the capital of France?")

    assert status is SubmitStatus.COMPLETED
    assert [(m.origin, m.text) for m in controller.state.messages] == [
        (Origin.USER, "What is the capital of France?"),
        (Origin.ASSISTANT, answer),
    ]
    assert controller.state.is_loading is False
    assert controller.state.is_speaking is True

    speech.finish()
    await asyncio.sleep(0)
    assert controller.state.is_speaking is False
    speaking_flags = [s.is_speaking for s in recorder.snapshots]
    assert speaking_flags.index(True) < len(speaking_flags) - 1
    assert speaking_flags[-1] is False
    await controller.aclose()


@pytest.mark.asyncio
async def test_late_completion_of_stopped_utterance_keeps_new_one_speaking():
    controller, speech, _recorder = _controller(DummyClient())

    controller.speak("first")
    controller.stop_speaking()
    controller.speak("second")
    # the first utterance's handler fires after the second one started
    speech.utterance_handlers[0](None)
    await asyncio.sleep(0)

    assert controller.state.is_speaking is True
    speech.utterance_handlers[1](None)
    await asyncio.sleep(0)
    assert controller.state.is_speaking is False


@pytest.mark.asyncio
async def test_completion_with_error_clears_speaking_and_notifies():
    controller, speech, recorder = _controller(DummyClient())

    controller.speak("hello")
    speech.finish(SpeechError("Piper model not found: en-US"))
    await asyncio.sleep(0)

    assert controller.state.is_speaking is False
    assert recorder.notices[-1].level == "error"
    assert recorder.notices[-1].text == "Error: Piper model not found: en-US"


@pytest.mark.asyncio
async def test_malformed_response_detail_is_logged(caplog):
    client = DummyClient(error=MalformedResponse("content without parts"))
    controller, _speech, _recorder = _controller(client)

    with caplog.at_level(logging.WARNING, logger="lgchat.conversation"):
        await controller.submit("Hi")

    messages = [record.getMessage() for record in caplog.records if record.name == "lgchat.conversation"]
    assert any("content without parts" in message for message in messages)
    assert controller.state.messages[-1].text == "Error: Invalid response format from API"


@pytest.mark.asyncio
async def test_shutdown_with_supplied_loop_returns_teardown_future():
    client = DummyClient()
    controller, speech, _recorder = _controller(client)

    future = await asyncio.to_thread(controller.shutdown)
    await asyncio.wrap_future(future)

    assert controller.closed is True
    assert client.closed is True
    assert speech.released is True
    assert controller.shutdown() is future


def test_shutdown_stops_and_closes_owned_loop():
    client = DummyClient()
    speech = DummySpeech()
    controller = ConversationController(Settings(), ConstantCredentialSource("k1"), client, speech)
    loop = controller.loop

    assert controller.submit_threadsafe("").result(timeout=2) is SubmitStatus.IGNORED
    controller.shutdown()

    assert loop.is_closed()
    assert client.closed is True
    assert speech.released is True
    assert controller.shutdown() is None
