import asyncio
import logging
import wave
from collections.abc import AsyncIterator
from pathlib import Path

logger = logging.getLogger(__name__)

COMPRESSED_CHUNK_BYTES = 4096


class WavFileSource:
    """Streams 16-bit PCM frames from a WAV file.

    With ``realtime`` pacing each frame is followed by a sleep of its own
    duration, so the service sees audio at the rate a microphone would deliver.
    """

    def __init__(self, path: str, frame_duration_ms: int = 20, realtime: bool = True) -> None:
        self._path = Path(path)
        self._frame_duration_ms = frame_duration_ms
        self._realtime = realtime
        self._wav: wave.Wave_read | None = None
        self._sample_rate = 0
        self._channels = 0

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def channels(self) -> int:
        return self._channels

    @property
    def is_compressed(self) -> bool:
        return False

    async def start(self) -> None:
        wav = wave.open(str(self._path), "rb")
        if wav.getsampwidth() != 2:
            sample_width = wav.getsampwidth()
            wav.close()
            raise ValueError(
                f"{self._path} uses {sample_width * 8}-bit samples, only 16-bit PCM is supported"
            )
        self._wav = wav
        self._sample_rate = wav.getframerate()
        self._channels = wav.getnchannels()
        logger.info(
            "Reading %s (rate=%d, channels=%d, %.1fs)",
            self._path, self._sample_rate, self._channels,
            wav.getnframes() / self._sample_rate,
        )

    async def stop(self) -> None:
        if self._wav:
            self._wav.close()
            self._wav = None

    async def read_frames(self) -> AsyncIterator[bytes]:
        if not self._wav:
            return
        frames_per_chunk = max(1, int(self._sample_rate * self._frame_duration_ms / 1000))
        while self._wav is not None:
            chunk = self._wav.readframes(frames_per_chunk)
            if not chunk:
                break
            yield chunk
            if self._realtime:
                await asyncio.sleep(self._frame_duration_ms / 1000)
            else:
                await asyncio.sleep(0)


class CompressedFileSource:
    """Streams a compressed container file (mp3, ogg, flac...) as opaque byte chunks."""

    def __init__(self, path: str, chunk_bytes: int = COMPRESSED_CHUNK_BYTES) -> None:
        self._path = Path(path)
        self._chunk_bytes = chunk_bytes
        self._file = None

    @property
    def sample_rate(self) -> int:
        return 0

    @property
    def channels(self) -> int:
        return 0

    @property
    def is_compressed(self) -> bool:
        return True

    async def start(self) -> None:
        self._file = open(self._path, "rb")
        logger.info("Reading compressed audio from %s", self._path)

    async def stop(self) -> None:
        if self._file:
            self._file.close()
            self._file = None

    async def read_frames(self) -> AsyncIterator[bytes]:
        while self._file is not None:
            chunk = self._file.read(self._chunk_bytes)
            if not chunk:
                break
            yield chunk
            await asyncio.sleep(0)
