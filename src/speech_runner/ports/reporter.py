from typing import Protocol

from speech_runner.domain.results import CancellationDetails, RecognitionResult


class ReporterPort(Protocol):
    def prompt(self, message: str) -> None: ...
    def session_started(self) -> None: ...
    def session_stopped(self) -> None: ...
    def recognizing(self, result: RecognitionResult) -> None: ...
    def recognized(self, result: RecognitionResult) -> None: ...
    def canceled(self, details: CancellationDetails) -> None: ...
    def close(self) -> None: ...
