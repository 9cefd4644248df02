import asyncio

import pytest

from speech_runner.domain.events import (
    Canceled,
    Recognized,
    Recognizing,
    SessionStarted,
    SessionStopped,
)
from speech_runner.domain.results import (
    CancellationDetails,
    CancellationReason,
    RecognitionResult,
    ResultReason,
)
from speech_runner.domain.session import DEFAULT_PROMPT, RecognitionSession
from speech_runner.domain.state import InvalidTransitionError, SessionState
from speech_runner.domain.stop_signal import StopReason

from conftest import FakeRecognizer, RecordingReporter


def _speech(text: str) -> RecognitionResult:
    return RecognitionResult(reason=ResultReason.RECOGNIZED_SPEECH, text=text)


def _partial(text: str) -> RecognitionResult:
    return RecognitionResult(reason=ResultReason.RECOGNIZING_SPEECH, text=text)


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0)


class TestSingleShot:
    @pytest.mark.asyncio
    async def test_recognized_intent(self):
        result = RecognitionResult(
            reason=ResultReason.RECOGNIZED_INTENT,
            text="Go to floor two.",
            intent_id="ChangeFloors",
            entities={"floorName": "two"},
            json='{"intentId": "ChangeFloors"}',
        )
        recognizer = FakeRecognizer(result=result)
        reporter = RecordingReporter()

        returned = await RecognitionSession(recognizer, reporter).run_single_shot()

        assert returned is result
        assert reporter.calls == [("prompt", DEFAULT_PROMPT), ("recognized", result)]
        assert recognizer.close_count == 1

    @pytest.mark.asyncio
    async def test_recognized_speech_has_no_intent(self):
        recognizer = FakeRecognizer(result=_speech("Hello there."))
        reporter = RecordingReporter()

        returned = await RecognitionSession(recognizer, reporter).run_single_shot()

        assert returned.reason == ResultReason.RECOGNIZED_SPEECH
        assert returned.intent_id is None

    @pytest.mark.asyncio
    async def test_no_match(self):
        recognizer = FakeRecognizer(result=RecognitionResult.no_match())
        reporter = RecordingReporter()

        returned = await RecognitionSession(recognizer, reporter).run_single_shot()

        assert returned.reason == ResultReason.NO_MATCH
        assert reporter.names() == ["prompt", "recognized"]

    @pytest.mark.asyncio
    async def test_canceled_reports_cancellation_details(self):
        details = CancellationDetails.error("401", "Invalid credentials")
        recognizer = FakeRecognizer(result=RecognitionResult.canceled(details))
        reporter = RecordingReporter()

        returned = await RecognitionSession(recognizer, reporter).run_single_shot()

        assert returned.reason == ResultReason.CANCELED
        assert reporter.calls[-1] == ("canceled", details)
        assert recognizer.close_count == 1

    @pytest.mark.asyncio
    async def test_setup_error_releases_recognizer(self):
        recognizer = FakeRecognizer(start_error=ConnectionError("no route to host"))
        session = RecognitionSession(recognizer, RecordingReporter())

        with pytest.raises(ConnectionError):
            await session.run_single_shot()

        assert recognizer.close_count == 1


class TestContinuous:
    @pytest.mark.asyncio
    async def test_end_of_stream_cancels_session(self):
        final = _speech("Go to the lobby.")
        recognizer = FakeRecognizer(
            events=[
                SessionStarted(session_id="s1"),
                Recognizing(result=_partial("go to")),
                Recognized(result=final),
                Canceled(details=CancellationDetails.end_of_stream()),
                SessionStopped(session_id="s1"),
            ]
        )
        reporter = RecordingReporter()
        session = RecognitionSession(recognizer, reporter)

        outcome = await session.run_continuous()

        assert outcome.state == SessionState.CANCELED
        assert outcome.stop_reason == StopReason.CANCELED
        assert outcome.cancellation.reason == CancellationReason.END_OF_STREAM
        assert outcome.recognized_count == 1
        assert reporter.names() == ["prompt", "session_started", "recognizing", "recognized", "canceled"]
        assert session.state == SessionState.IDLE
        assert recognizer.close_count == 1

    @pytest.mark.asyncio
    async def test_session_stopped_ends_session(self):
        recognizer = FakeRecognizer(
            events=[
                SessionStarted(session_id="s1"),
                Recognized(result=_speech("Open the doors.")),
                SessionStopped(session_id="s1"),
            ]
        )
        reporter = RecordingReporter()

        outcome = await RecognitionSession(recognizer, reporter).run_continuous()

        assert outcome.state == SessionState.STOPPED
        assert outcome.stop_reason == StopReason.SESSION_STOPPED
        assert reporter.names()[-1] == "session_stopped"

    @pytest.mark.asyncio
    async def test_nothing_reported_after_error_cancellation(self):
        details = CancellationDetails.error("1011", "Internal server error")
        recognizer = FakeRecognizer(
            events=[
                SessionStarted(session_id="s1"),
                Canceled(details=details),
                Recognized(result=_speech("late result")),
                SessionStopped(session_id="s1"),
            ]
        )
        reporter = RecordingReporter()

        outcome = await RecognitionSession(recognizer, reporter).run_continuous()

        assert outcome.state == SessionState.CANCELED
        assert outcome.cancellation == details
        assert reporter.calls[-1] == ("canceled", details)
        assert "recognized" not in reporter.names()
        assert recognizer.close_count == 1

    @pytest.mark.asyncio
    async def test_explicit_stop_ends_with_single_stopped(self):
        recognizer = FakeRecognizer(
            events=[
                SessionStarted(session_id="s1"),
                Recognized(result=_speech("Go to floor one.")),
                Recognized(result=_speech("Go to floor two.")),
            ]
        )
        reporter = RecordingReporter()
        session = RecognitionSession(recognizer, reporter)

        task = asyncio.create_task(session.run_continuous())
        await _wait_for(lambda: reporter.names().count("recognized") == 2)
        session.request_stop()
        session.request_stop()
        outcome = await asyncio.wait_for(task, timeout=1.0)

        assert outcome.state == SessionState.STOPPED
        assert outcome.stop_reason == StopReason.STOP_REQUESTED
        assert reporter.names()[-2:] == ["recognized", "session_stopped"]
        assert reporter.names().count("session_stopped") == 1
        assert recognizer.close_count == 1

    @pytest.mark.asyncio
    async def test_setup_error_releases_recognizer(self):
        recognizer = FakeRecognizer(start_error=RuntimeError("audio device busy"))
        session = RecognitionSession(recognizer, RecordingReporter())

        with pytest.raises(RuntimeError):
            await session.run_continuous()

        assert recognizer.close_count == 1

    @pytest.mark.asyncio
    async def test_out_of_order_events_raise(self):
        recognizer = FakeRecognizer(events=[Recognized(result=_speech("too early"))])
        session = RecognitionSession(recognizer, RecordingReporter())

        with pytest.raises(InvalidTransitionError):
            await session.run_continuous()

        assert recognizer.close_count == 1

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        details = CancellationDetails.error("401", "Unauthorized")
        recognizer = FakeRecognizer(events=[Canceled(details=details)])
        reporter = RecordingReporter()

        outcome = await RecognitionSession(recognizer, reporter).run_continuous()

        assert outcome.state == SessionState.CANCELED
        assert reporter.names() == ["prompt", "canceled"]

    @pytest.mark.asyncio
    async def test_custom_prompt(self):
        recognizer = FakeRecognizer(events=[SessionStarted(), SessionStopped()])
        reporter = RecordingReporter()

        await RecognitionSession(recognizer, reporter, prompt="Speak into your microphone.").run_continuous()

        assert reporter.calls[0] == ("prompt", "Speak into your microphone.")
