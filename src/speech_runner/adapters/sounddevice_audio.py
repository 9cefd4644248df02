import asyncio
import logging
import os
from collections.abc import AsyncIterator

import janus
import numpy as np
import sounddevice as sd

logger = logging.getLogger(__name__)

MAX_BUFFERED_FRAMES = 250


class SounddeviceCapture:
    """Default or named microphone as 16-bit mono PCM frames.

    PortAudio delivers blocks on its own thread; they cross into the event
    loop through a janus queue. When the consumer falls behind, the newest
    frames are dropped and counted rather than blocking the audio thread.
    """

    def __init__(
        self,
        device: str | int | None = None,
        sample_rate: int = 16000,
        frame_duration_ms: int = 20,
        max_buffered_frames: int = MAX_BUFFERED_FRAMES,
    ) -> None:
        self._device = device or None
        self._sample_rate = sample_rate
        self._frame_duration_ms = frame_duration_ms
        self._blocksize = int(sample_rate * frame_duration_ms / 1000)
        self._max_buffered_frames = max_buffered_frames
        self._stream: sd.InputStream | None = None
        self._frames: janus.Queue[bytes] | None = None
        self._dropped_frames = 0

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def channels(self) -> int:
        return 1

    @property
    def is_compressed(self) -> bool:
        return False

    @property
    def dropped_frames(self) -> int:
        return self._dropped_frames

    async def start(self) -> None:
        frames: janus.Queue[bytes] = janus.Queue(maxsize=self._max_buffered_frames)
        self._frames = frames
        self._dropped_frames = 0

        def on_block(indata: np.ndarray, frame_count: int, time_info, status) -> None:
            if status.input_overflow:
                logger.debug("Input overflow reported by PortAudio")
            try:
                frames.sync_q.put_nowait(np.ascontiguousarray(indata[:, 0]).tobytes())
            except janus.SyncQueueFull:
                self._dropped_frames += 1
            except janus.SyncQueueShutDown:
                raise sd.CallbackStop

        device = self._select_device()
        self._stream = sd.InputStream(
            device=device,
            samplerate=self._sample_rate,
            channels=1,
            dtype="int16",
            blocksize=self._blocksize,
            callback=on_block,
        )
        self._stream.start()
        logger.info(
            "Microphone open (device=%s, rate=%d, block=%dms)",
            device if device is not None else "default", self._sample_rate, self._frame_duration_ms,
        )

    async def stop(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()
        frames, self._frames = self._frames, None
        if frames is not None:
            frames.close()
            await frames.wait_closed()
        if stream is not None:
            logger.info("Microphone closed (%d frames dropped)", self._dropped_frames)

    async def read_frames(self) -> AsyncIterator[bytes]:
        frames = self._frames
        if frames is None:
            return
        while True:
            try:
                block = await frames.async_q.get()
            except janus.AsyncQueueShutDown:
                return
            yield block

    def _select_device(self) -> str | int | None:
        if self._device is None or isinstance(self._device, int):
            return self._device
        if self._device.isdigit():
            return int(self._device)
        wanted = self._device.lower()
        for index, info in enumerate(sd.query_devices()):
            if wanted in info["name"].lower() and info["max_input_channels"] > 0:
                logger.info("Using input device %d (%s)", index, info["name"])
                return index
        # PipeWire can still route to nodes PortAudio does not list.
        os.environ["PIPEWIRE_NODE"] = self._device
        logger.info("'%s' is not a PortAudio device, routing through PIPEWIRE_NODE", self._device)
        return None
