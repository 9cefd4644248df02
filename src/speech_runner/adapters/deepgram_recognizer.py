import asyncio
import logging
import re
import uuid
from collections.abc import AsyncIterator, Callable

from deepgram import AsyncDeepgramClient
from deepgram.listen.v1.socket_client import EventType

from speech_runner.domain.events import (
    Canceled,
    RecognitionEvent,
    Recognized,
    Recognizing,
    SessionStarted,
    SessionStopped,
)
from speech_runner.domain.partials import StablePartialFilter
from speech_runner.domain.results import (
    CancellationDetails,
    CancellationReason,
    RecognitionResult,
    ResultReason,
)
from speech_runner.ports.audio import AudioSourcePort
from speech_runner.ports.recognizer import LanguageModel
from speech_runner.user_config import ContainerFormat, ProfanityOption, UserConfig

logger = logging.getLogger(__name__)

STOP_TIMEOUT_SECONDS = 10.0

_MASKED_WORD = re.compile(r"\S*\*\*+\S*")

# Raw (headerless) encodings need an explicit encoding and sample rate;
# containers (mp3, ogg, flac, "any") are detected by the service.
_RAW_ENCODINGS: dict[ContainerFormat, tuple[str, int]] = {
    ContainerFormat.ALAW: ("alaw", 8000),
    ContainerFormat.MULAW: ("mulaw", 8000),
    ContainerFormat.AMRNB: ("amr-nb", 8000),
    ContainerFormat.AMRWB: ("amr-wb", 16000),
}


def build_connect_options(
    config: UserConfig,
    audio: AudioSourcePort,
    model: str = "nova-2",
    endpointing_ms: int = 300,
    utterance_end_ms: int = 1000,
) -> dict:
    options: dict = {
        "model": model,
        "language": _select_language(config),
        "interim_results": "true",
        "punctuate": "true",
        "smart_format": "true",
        "vad_events": "true",
        "endpointing": str(endpointing_ms),
        "utterance_end_ms": str(utterance_end_ms),
        "profanity_filter": "false" if config.profanity_option == ProfanityOption.RAW else "true",
    }

    container = config.effective_container_format
    if container is None:
        options["encoding"] = "linear16"
        options["sample_rate"] = str(audio.sample_rate)
        options["channels"] = str(audio.channels or 1)
    elif container in _RAW_ENCODINGS:
        encoding, sample_rate = _RAW_ENCODINGS[container]
        options["encoding"] = encoding
        options["sample_rate"] = str(sample_rate)

    if config.phrase_list:
        options["keywords"] = list(config.phrase_list)
    return options


def _select_language(config: UserConfig) -> str:
    candidates = config.language_id_languages
    if not candidates:
        return config.language
    if len(candidates) == 1:
        return candidates[0]
    return "multi"


def _cancellation_from_exception(exc: BaseException) -> CancellationDetails:
    status = getattr(getattr(exc, "response", None), "status_code", None)
    status = status or getattr(exc, "status_code", None)
    code = str(status) if status else type(exc).__name__
    return CancellationDetails.error(code, str(exc) or repr(exc))


class DeepgramRecognizer:
    def __init__(
        self,
        api_key: str,
        config: UserConfig,
        audio: AudioSourcePort,
        model: str = "nova-2",
        endpointing_ms: int = 300,
        utterance_end_ms: int = 1000,
        client_factory: Callable[..., AsyncDeepgramClient] = AsyncDeepgramClient,
    ) -> None:
        self._api_key = api_key
        self._config = config
        self._audio = audio
        self._model = model
        self._endpointing_ms = endpointing_ms
        self._utterance_end_ms = utterance_end_ms
        self._client_factory = client_factory

        self._language_model: LanguageModel | None = None
        self._partials = StablePartialFilter(config.stable_partial_result_threshold)
        self._event_queue: asyncio.Queue[RecognitionEvent] = asyncio.Queue()

        self._socket = None
        self._context_manager = None
        self._listener_task: asyncio.Task | None = None
        self._pump_task: asyncio.Task | None = None
        self._session_id = ""
        self._session_active = False
        self._audio_started = False
        self._stream_end_sent = False
        self._stop_requested = False
        self._end_of_stream = False
        self._socket_error: CancellationDetails | None = None
        self._closed = False

        self._segments: list[tuple[str, float, float, str | None]] = []
        self._single_shot: asyncio.Future[RecognitionResult] | None = None

    def apply_language_model(self, model: LanguageModel) -> None:
        self._language_model = model
        logger.info("Applied language model '%s'", model.model_id)

    async def events(self) -> AsyncIterator[RecognitionEvent]:
        while True:
            event = await self._event_queue.get()
            yield event

    async def start_continuous(self) -> None:
        try:
            await self._open()
        except Exception as exc:
            logger.error("Failed to start recognition: %s", exc)
            await self._publish(Canceled(details=_cancellation_from_exception(exc)))
            return
        await self._publish(SessionStarted(session_id=self._session_id))
        self._start_tasks()

    async def recognize_once(self) -> RecognitionResult:
        self._single_shot = asyncio.get_running_loop().create_future()
        try:
            await self._open()
        except Exception as exc:
            logger.error("Failed to start recognition: %s", exc)
            return RecognitionResult.canceled(_cancellation_from_exception(exc))
        self._start_tasks()
        result = await self._single_shot
        await self.stop_continuous()
        return result

    async def stop_continuous(self) -> None:
        if not self._session_active:
            return
        self._stop_requested = True
        if self._pump_task and not self._pump_task.done():
            self._pump_task.cancel()
        await self._send_close_stream()
        if self._listener_task:
            try:
                await asyncio.wait_for(asyncio.shield(self._listener_task), timeout=STOP_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                logger.warning("Deepgram did not close the stream within %.0fs", STOP_TIMEOUT_SECONDS)
                self._listener_task.cancel()
                await self._on_stream_closed()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        for task in (self._pump_task, self._listener_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception:
                    logger.debug("Task ended with error during close", exc_info=True)
        self._pump_task = None
        self._listener_task = None

        if self._context_manager:
            try:
                await self._context_manager.__aexit__(None, None, None)
            except Exception:
                logger.debug("Error closing Deepgram connection", exc_info=True)
        self._context_manager = None
        self._socket = None
        self._session_active = False

        if self._audio_started:
            await self._audio.stop()
            self._audio_started = False
        logger.info("Deepgram recognizer closed")

    async def _open(self) -> None:
        await self._audio.start()
        self._audio_started = True

        options = build_connect_options(
            self._config,
            self._audio,
            model=self._model,
            endpointing_ms=self._endpointing_ms,
            utterance_end_ms=self._utterance_end_ms,
        )
        logger.debug("Deepgram connect options: %s", options)

        client = self._client_factory(api_key=self._api_key)
        self._context_manager = client.listen.v1.connect(**options)
        self._socket = await self._context_manager.__aenter__()
        self._socket.on(EventType.MESSAGE, self._on_message)
        self._socket.on(EventType.ERROR, self._on_error)
        self._session_id = uuid.uuid4().hex
        self._session_active = True
        logger.info(
            "Deepgram session %s started (model=%s, language=%s, region=%s)",
            self._session_id, self._model, options["language"], self._config.region,
        )

    def _start_tasks(self) -> None:
        self._listener_task = asyncio.create_task(self._listen())
        self._pump_task = asyncio.create_task(self._pump_audio())

    async def _listen(self) -> None:
        try:
            await self._socket.start_listening()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Deepgram listener failed: %s", exc)
            self._socket_error = self._socket_error or _cancellation_from_exception(exc)
        await self._on_stream_closed()

    async def _pump_audio(self) -> None:
        sent_count = 0
        try:
            async for frame in self._audio.read_frames():
                if self._stop_requested or not self._session_active:
                    return
                await self._socket._send(frame)
                sent_count += 1
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Failed to send audio to Deepgram: %s", exc)
            self._socket_error = self._socket_error or _cancellation_from_exception(exc)
            await self._send_close_stream()
            return

        if not self._stop_requested:
            logger.info("Audio input exhausted after %d chunks", sent_count)
            self._end_of_stream = True
            await self._send_close_stream()

    async def _send_close_stream(self) -> None:
        if self._stream_end_sent or not self._socket:
            return
        self._stream_end_sent = True
        try:
            await self._socket._send({"type": "CloseStream"})
        except Exception as exc:
            logger.warning("Failed to send CloseStream: %s", exc)

    async def _on_stream_closed(self) -> None:
        if not self._session_active:
            return
        self._session_active = False
        await self._flush_utterance()

        if self._socket_error is not None:
            await self._finish(self._socket_error)
        elif self._end_of_stream:
            await self._finish(CancellationDetails.end_of_stream())
        elif self._stop_requested:
            await self._finish(None)
        else:
            await self._finish(
                CancellationDetails.error("ConnectionClosed", "Deepgram closed the connection unexpectedly")
            )

    async def _finish(self, cancellation: CancellationDetails | None) -> None:
        if self._single_shot is not None:
            if not self._single_shot.done():
                if cancellation is None or cancellation.reason == CancellationReason.END_OF_STREAM:
                    self._single_shot.set_result(RecognitionResult.no_match())
                else:
                    self._single_shot.set_result(RecognitionResult.canceled(cancellation))
            return

        if cancellation is not None:
            await self._publish(Canceled(details=cancellation))
            if cancellation.reason == CancellationReason.END_OF_STREAM:
                await self._publish(SessionStopped(session_id=self._session_id))
            return
        await self._publish(SessionStopped(session_id=self._session_id))

    async def _on_message(self, message) -> None:
        message_type = getattr(message, "type", None)
        if message_type == "Results":
            await self._handle_results(message)
        elif message_type == "UtteranceEnd":
            await self._flush_utterance()
        elif message_type == "Metadata":
            logger.debug("Deepgram metadata: request_id=%s", getattr(message, "request_id", ""))
        elif message_type == "SpeechStarted":
            logger.debug("Speech started at %.2fs", getattr(message, "timestamp", 0.0))

    async def _on_error(self, error) -> None:
        logger.error("Deepgram error: %s", error)
        if isinstance(error, BaseException):
            self._socket_error = self._socket_error or _cancellation_from_exception(error)
        else:
            self._socket_error = self._socket_error or CancellationDetails.error("ServiceError", str(error))

    async def _handle_results(self, message) -> None:
        try:
            alternative = message.channel.alternatives[0]
            transcript = self._apply_profanity(alternative.transcript or "")
        except (IndexError, AttributeError):
            return

        start = float(getattr(message, "start", 0.0) or 0.0)
        end = start + float(getattr(message, "duration", 0.0) or 0.0)
        languages = getattr(alternative, "languages", None)
        language = languages[0] if languages else None

        if not message.is_final:
            if not transcript:
                return
            stable = self._partials.feed(transcript)
            if stable is None:
                return
            pending = " ".join(segment[0] for segment in self._segments)
            text = f"{pending} {stable}".strip()
            offset = self._segments[0][1] if self._segments else start
            await self._publish(
                Recognizing(
                    result=RecognitionResult(
                        reason=ResultReason.RECOGNIZING_SPEECH,
                        text=text,
                        offset=offset,
                        duration=end - offset,
                        language=language,
                    )
                )
            )
            return

        self._partials.reset()
        if transcript:
            self._segments.append((transcript, start, end, language))
        if getattr(message, "speech_final", False):
            await self._flush_utterance()

    async def _flush_utterance(self) -> None:
        if not self._segments:
            return
        segments = self._segments
        self._segments = []
        text = " ".join(segment[0] for segment in segments)
        offset = segments[0][1]
        end = segments[-1][2]
        language = next((segment[3] for segment in segments if segment[3]), None)
        result = self._final_result(text, offset, end - offset, language)

        if self._single_shot is not None:
            if not self._single_shot.done():
                self._single_shot.set_result(result)
            return
        await self._publish(Recognized(result=result))

    def _final_result(
        self, text: str, offset: float, duration: float, language: str | None
    ) -> RecognitionResult:
        if not text:
            return RecognitionResult.no_match(offset=offset, duration=duration)
        if self._language_model is not None:
            match = self._language_model.match(text)
            if match is not None:
                logger.info("Intent matched: %s %s", match.intent_id, match.entities)
                return RecognitionResult(
                    reason=ResultReason.RECOGNIZED_INTENT,
                    text=text,
                    intent_id=match.intent_id,
                    entities=dict(match.entities),
                    json=match.to_json(text),
                    offset=offset,
                    duration=duration,
                    language=language,
                )
        return RecognitionResult(
            reason=ResultReason.RECOGNIZED_SPEECH,
            text=text,
            offset=offset,
            duration=duration,
            language=language,
        )

    def _apply_profanity(self, text: str) -> str:
        if self._config.profanity_option != ProfanityOption.REMOVED:
            return text
        return " ".join(_MASKED_WORD.sub("", text).split())

    async def _publish(self, event: RecognitionEvent) -> None:
        if self._single_shot is not None:
            return
        await self._event_queue.put(event)
