from typing import AsyncIterator, Protocol

from speech_runner.domain.events import RecognitionEvent
from speech_runner.domain.patterns import IntentMatch
from speech_runner.domain.results import RecognitionResult


class LanguageModel(Protocol):
    model_id: str

    def match(self, text: str) -> IntentMatch | None: ...


class RecognizerPort(Protocol):
    def apply_language_model(self, model: LanguageModel) -> None: ...
    async def recognize_once(self) -> RecognitionResult: ...
    async def start_continuous(self) -> None: ...
    async def stop_continuous(self) -> None: ...
    def events(self) -> AsyncIterator[RecognitionEvent]: ...
    async def close(self) -> None: ...
