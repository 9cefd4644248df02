import asyncio
import logging
from enum import Enum

logger = logging.getLogger(__name__)


class StopReason(Enum):
    SESSION_STOPPED = "session_stopped"
    CANCELED = "canceled"
    STOP_REQUESTED = "stop_requested"


class StopSignal:
    """One-shot stop signal shared between the event consumer and stop requesters.

    Any number of writers may call ``set``; the first reason is kept and later
    calls are no-ops. A single reader awaits ``wait``.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[StopReason] | None = None
        self._reason: StopReason | None = None

    @property
    def is_set(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> StopReason | None:
        return self._reason

    def set(self, reason: StopReason) -> bool:
        if self._reason is not None:
            logger.debug("Stop already requested (%s), ignoring %s", self._reason.value, reason.value)
            return False
        self._reason = reason
        if self._future is not None and not self._future.done():
            self._future.set_result(reason)
        return True

    async def wait(self) -> StopReason:
        if self._reason is not None:
            return self._reason
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return await asyncio.shield(self._future)
