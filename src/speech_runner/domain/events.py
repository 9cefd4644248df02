from dataclasses import dataclass, field
from time import time

from speech_runner.domain.results import CancellationDetails, RecognitionResult


@dataclass(frozen=True)
class RecognitionEvent:
    timestamp: float = field(default_factory=time)

    @property
    def is_terminal(self) -> bool:
        return False


@dataclass(frozen=True)
class SessionStarted(RecognitionEvent):
    session_id: str = ""


@dataclass(frozen=True)
class SessionStopped(RecognitionEvent):
    session_id: str = ""

    @property
    def is_terminal(self) -> bool:
        return True


@dataclass(frozen=True)
class Recognizing(RecognitionEvent):
    result: RecognitionResult | None = None


@dataclass(frozen=True)
class Recognized(RecognitionEvent):
    result: RecognitionResult | None = None


@dataclass(frozen=True)
class Canceled(RecognitionEvent):
    details: CancellationDetails | None = None

    @property
    def is_terminal(self) -> bool:
        return True
