from dataclasses import dataclass, field
from enum import Enum


class ResultReason(Enum):
    RECOGNIZING_SPEECH = "RecognizingSpeech"
    RECOGNIZED_SPEECH = "RecognizedSpeech"
    RECOGNIZED_INTENT = "RecognizedIntent"
    NO_MATCH = "NoMatch"
    CANCELED = "Canceled"


class CancellationReason(Enum):
    ERROR = "Error"
    END_OF_STREAM = "EndOfStream"


@dataclass(frozen=True)
class CancellationDetails:
    reason: CancellationReason
    error_code: str | None = None
    error_details: str | None = None

    @classmethod
    def error(cls, code: str, details: str) -> "CancellationDetails":
        return cls(reason=CancellationReason.ERROR, error_code=code, error_details=details)

    @classmethod
    def end_of_stream(cls) -> "CancellationDetails":
        return cls(reason=CancellationReason.END_OF_STREAM)


@dataclass(frozen=True)
class RecognitionResult:
    reason: ResultReason
    text: str = ""
    intent_id: str | None = None
    entities: dict[str, str] = field(default_factory=dict)
    json: str | None = None
    offset: float = 0.0
    duration: float = 0.0
    language: str | None = None
    cancellation: CancellationDetails | None = None

    @property
    def end(self) -> float:
        return self.offset + self.duration

    @classmethod
    def no_match(cls, offset: float = 0.0, duration: float = 0.0) -> "RecognitionResult":
        return cls(reason=ResultReason.NO_MATCH, offset=offset, duration=duration)

    @classmethod
    def canceled(cls, details: CancellationDetails) -> "RecognitionResult":
        return cls(reason=ResultReason.CANCELED, cancellation=details)
