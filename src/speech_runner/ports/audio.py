from typing import AsyncIterator, Protocol


class AudioSourcePort(Protocol):
    @property
    def sample_rate(self) -> int: ...
    @property
    def channels(self) -> int: ...
    @property
    def is_compressed(self) -> bool: ...
    async def start(self) -> None: ...
    async def stop(self) -> None: ...
    def read_frames(self) -> AsyncIterator[bytes]: ...
