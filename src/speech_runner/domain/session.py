import asyncio
import logging
from dataclasses import dataclass

from speech_runner.domain.events import (
    Canceled,
    RecognitionEvent,
    Recognized,
    Recognizing,
    SessionStarted,
    SessionStopped,
)
from speech_runner.domain.results import CancellationDetails, RecognitionResult, ResultReason
from speech_runner.domain.state import (
    TERMINAL_STATES,
    SessionState,
    validate_transition,
)
from speech_runner.domain.stop_signal import StopReason, StopSignal
from speech_runner.ports.recognizer import RecognizerPort
from speech_runner.ports.reporter import ReporterPort

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "Say something..."


@dataclass(frozen=True)
class SessionOutcome:
    state: SessionState
    stop_reason: StopReason | None
    cancellation: CancellationDetails | None = None
    recognized_count: int = 0


class RecognitionSession:
    def __init__(
        self,
        recognizer: RecognizerPort,
        reporter: ReporterPort,
        prompt: str = DEFAULT_PROMPT,
    ) -> None:
        self._recognizer = recognizer
        self._reporter = reporter
        self._prompt = prompt

        self._state = SessionState.IDLE
        self._stop = StopSignal()
        self._cancellation: CancellationDetails | None = None
        self._recognized_count = 0
        self._released = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def stop_reason(self) -> StopReason | None:
        return self._stop.reason

    def _transition_to(self, target: SessionState) -> None:
        validate_transition(self._state, target)
        if target != self._state:
            logger.debug("State: %s -> %s", self._state.name, target.name)
        self._state = target

    def request_stop(self) -> None:
        if self._stop.set(StopReason.STOP_REQUESTED):
            logger.info("Stop requested")

    async def run_single_shot(self) -> RecognitionResult:
        try:
            self._reporter.prompt(self._prompt)
            result = await self._recognizer.recognize_once()
            if result.reason == ResultReason.CANCELED and result.cancellation is not None:
                self._reporter.canceled(result.cancellation)
            else:
                self._reporter.recognized(result)
            logger.info("Single-shot recognition finished: %s", result.reason.value)
            return result
        finally:
            await self._release()

    async def run_continuous(self) -> SessionOutcome:
        stop_watcher: asyncio.Task | None = None
        try:
            self._reporter.prompt(self._prompt)
            await self._recognizer.start_continuous()
            stop_watcher = asyncio.create_task(self._stop_when_requested())

            async for event in self._recognizer.events():
                self._dispatch(event)
                if event.is_terminal:
                    break

            if self._state not in TERMINAL_STATES:
                logger.warning("Event stream ended without a terminal event")
            await self._recognizer.stop_continuous()
        finally:
            try:
                if stop_watcher is not None:
                    stop_watcher.cancel()
                    try:
                        await stop_watcher
                    except asyncio.CancelledError:
                        pass
            finally:
                await self._release()

        outcome = SessionOutcome(
            state=self._state,
            stop_reason=self._stop.reason,
            cancellation=self._cancellation,
            recognized_count=self._recognized_count,
        )
        self._state = SessionState.IDLE
        return outcome

    async def _stop_when_requested(self) -> None:
        reason = await self._stop.wait()
        if reason == StopReason.STOP_REQUESTED:
            await self._recognizer.stop_continuous()

    def _dispatch(self, event: RecognitionEvent) -> None:
        if isinstance(event, SessionStarted):
            self._transition_to(SessionState.STARTED)
            logger.info("Session started %s", event.session_id)
            self._reporter.session_started()
        elif isinstance(event, Recognizing):
            self._transition_to(SessionState.RECOGNIZING)
            self._reporter.recognizing(event.result)
        elif isinstance(event, Recognized):
            self._transition_to(SessionState.RECOGNIZED)
            self._recognized_count += 1
            self._reporter.recognized(event.result)
        elif isinstance(event, Canceled):
            self._transition_to(SessionState.CANCELED)
            self._cancellation = event.details
            logger.info("Session canceled: %s", event.details.reason.value)
            self._reporter.canceled(event.details)
            self._stop.set(StopReason.CANCELED)
        elif isinstance(event, SessionStopped):
            self._transition_to(SessionState.STOPPED)
            logger.info("Session stopped %s", event.session_id)
            self._reporter.session_stopped()
            self._stop.set(StopReason.SESSION_STOPPED)
        else:
            logger.warning("Ignoring unknown event %r", event)

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        await self._recognizer.close()
        logger.debug("Recognizer released")
