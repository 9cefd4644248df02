import asyncio
import io
import wave
from collections.abc import AsyncIterator
from pathlib import Path

import numpy as np
import pytest

from speech_runner.domain.events import RecognitionEvent, SessionStopped
from speech_runner.domain.results import RecognitionResult
from speech_runner.user_config import UserConfig, build_user_config


SAMPLE_RATE = 16000
FRAME_DURATION_MS = 20
FRAME_SIZE = int(SAMPLE_RATE * FRAME_DURATION_MS / 1000)
TEST_KEY = "0123456789abcdef"


def generate_silence(duration_ms: int = 20, sample_rate: int = SAMPLE_RATE) -> bytes:
    num_samples = int(sample_rate * duration_ms / 1000)
    return np.zeros(num_samples, dtype=np.int16).tobytes()


def generate_sine_wave(
    frequency: float = 440.0,
    duration_ms: int = 20,
    amplitude: float = 0.8,
    sample_rate: int = SAMPLE_RATE,
) -> bytes:
    num_samples = int(sample_rate * duration_ms / 1000)
    t = np.arange(num_samples) / sample_rate
    signal = np.sin(2 * np.pi * frequency * t) * amplitude
    return (signal * 32767).astype(np.int16).tobytes()


def pcm_to_wav_bytes(pcm_data: bytes, sample_rate: int = SAMPLE_RATE, sample_width: int = 2) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm_data)
    return buffer.getvalue()


def write_wav(path: Path, pcm_data: bytes, sample_rate: int = SAMPLE_RATE, sample_width: int = 2) -> Path:
    path.write_bytes(pcm_to_wav_bytes(pcm_data, sample_rate, sample_width))
    return path


def make_config(**overrides) -> UserConfig:
    options = {"subscription_key": TEST_KEY, "region": "westus"}
    options.update(overrides)
    return build_user_config(**options)


class FakeAudioSource:
    def __init__(
        self,
        frames: list[bytes] | None = None,
        sample_rate: int = SAMPLE_RATE,
        compressed: bool = False,
    ) -> None:
        self._frames = frames or []
        self._sample_rate = sample_rate
        self._compressed = compressed
        self.start_count = 0
        self.stop_count = 0

    @property
    def sample_rate(self) -> int:
        return 0 if self._compressed else self._sample_rate

    @property
    def channels(self) -> int:
        return 0 if self._compressed else 1

    @property
    def is_compressed(self) -> bool:
        return self._compressed

    async def start(self) -> None:
        self.start_count += 1

    async def stop(self) -> None:
        self.stop_count += 1

    async def read_frames(self) -> AsyncIterator[bytes]:
        for frame in self._frames:
            yield frame
            await asyncio.sleep(0)


class FakeRecognizer:
    """Replays scripted events; stop_continuous answers with SessionStopped once."""

    def __init__(
        self,
        events: list[RecognitionEvent] | None = None,
        result: RecognitionResult | None = None,
        start_error: Exception | None = None,
    ) -> None:
        self._scripted = list(events or [])
        self._result = result or RecognitionResult.no_match()
        self._start_error = start_error
        self._queue: asyncio.Queue[RecognitionEvent] = asyncio.Queue()
        self._stopped_emitted = False
        self.language_model = None
        self.start_count = 0
        self.stop_count = 0
        self.close_count = 0

    def apply_language_model(self, model) -> None:
        self.language_model = model

    async def recognize_once(self) -> RecognitionResult:
        self.start_count += 1
        if self._start_error:
            raise self._start_error
        return self._result

    async def start_continuous(self) -> None:
        self.start_count += 1
        if self._start_error:
            raise self._start_error
        for event in self._scripted:
            self._queue.put_nowait(event)

    async def stop_continuous(self) -> None:
        self.stop_count += 1
        if not self._stopped_emitted:
            self._stopped_emitted = True
            self._queue.put_nowait(SessionStopped(session_id="fake-session"))

    async def events(self) -> AsyncIterator[RecognitionEvent]:
        while True:
            yield await self._queue.get()

    async def close(self) -> None:
        self.close_count += 1


class RecordingReporter:
    def __init__(self) -> None:
        self.calls: list[tuple[str, object]] = []
        self.closed = False

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def prompt(self, message: str) -> None:
        self.calls.append(("prompt", message))

    def session_started(self) -> None:
        self.calls.append(("session_started", None))

    def session_stopped(self) -> None:
        self.calls.append(("session_stopped", None))

    def recognizing(self, result: RecognitionResult) -> None:
        self.calls.append(("recognizing", result))

    def recognized(self, result: RecognitionResult) -> None:
        self.calls.append(("recognized", result))

    def canceled(self, details) -> None:
        self.calls.append(("canceled", details))

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def speech_frames():
    return [generate_sine_wave() for _ in range(5)]


@pytest.fixture
def fake_audio(speech_frames):
    return FakeAudioSource(speech_frames)


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def user_config():
    return make_config()


@pytest.fixture
def wav_file(tmp_path):
    pcm = generate_sine_wave(duration_ms=100)
    return write_wav(tmp_path / "speech.wav", pcm)
