import logging
import sys
from typing import TextIO

from speech_runner.domain.captions import caption_header, format_cue, format_timing
from speech_runner.domain.results import (
    CancellationDetails,
    CancellationReason,
    RecognitionResult,
    ResultReason,
)
from speech_runner.user_config import UserConfig

logger = logging.getLogger(__name__)


class TextReporter:
    """Writes recognition outcomes as text lines or caption cues.

    Final results go to the output file when one is configured, otherwise to
    stdout. Interim results only ever reach stdout. Error cancellations always
    reach stderr, even when console output is suppressed.
    """

    def __init__(
        self,
        config: UserConfig,
        captioning: bool = False,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self._config = config
        self._stdout = stdout or sys.stdout
        self._stderr = stderr or sys.stderr
        self._caption_format = config.caption_format if captioning else None
        self._show_language = config.language_id_languages is not None
        self._output: TextIO | None = None
        self._sequence_number = 0
        self._header_written = False

    def __enter__(self) -> "TextReporter":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def open(self) -> None:
        if self._config.output_file_path and self._output is None:
            self._output = open(self._config.output_file_path, "w", encoding="utf-8")
            logger.info("Writing results to %s", self._config.output_file_path)

    def close(self) -> None:
        if self._output is not None:
            self._output.close()
            self._output = None

    def prompt(self, message: str) -> None:
        self._console(message)

    def session_started(self) -> None:
        if self._caption_format is None:
            self._console("\n    Session started event.")

    def session_stopped(self) -> None:
        if self._caption_format is None:
            self._console("\n    Session stopped event.")
            self._console("\nStop recognition.")

    def recognizing(self, result: RecognitionResult) -> None:
        if not self._config.show_recognizing_results or self._config.suppress_console_output:
            return
        if self._caption_format is not None:
            timing = format_timing(result.offset, result.end, self._caption_format)
            self._console(f"{timing}\n{self._caption_text(result)}")
            return
        self._console(f"RECOGNIZING: Text={result.text}")

    def recognized(self, result: RecognitionResult) -> None:
        if result.reason == ResultReason.CANCELED and result.cancellation is not None:
            self.canceled(result.cancellation)
            return

        if self._caption_format is not None:
            self._caption(result)
            return

        if result.reason == ResultReason.RECOGNIZED_INTENT:
            self._emit(f"RECOGNIZED: Text={result.text}")
            self._emit(f"    Intent Id: {result.intent_id}.")
            for key, value in result.entities.items():
                self._emit(f"    {key}={value}")
            if result.json:
                self._emit(f"    Language Understanding JSON: {result.json}.")
        elif result.reason == ResultReason.RECOGNIZED_SPEECH:
            self._emit(f"RECOGNIZED: Text={result.text}")
            self._emit("    Intent not recognized.")
        elif result.reason == ResultReason.NO_MATCH:
            self._emit("NOMATCH: Speech could not be recognized.")

    def canceled(self, details: CancellationDetails) -> None:
        if details.reason == CancellationReason.ERROR:
            self._error(f"CANCELED: Reason={details.reason.value}")
            self._error(f"CANCELED: ErrorCode={details.error_code}")
            self._error(f"CANCELED: ErrorDetails={details.error_details}")
            self._error("CANCELED: Did you update the subscription info?")
            return
        self._console(f"CANCELED: Reason={details.reason.value}")

    def _caption(self, result: RecognitionResult) -> None:
        if result.reason not in (ResultReason.RECOGNIZED_SPEECH, ResultReason.RECOGNIZED_INTENT):
            logger.debug("No caption for %s result", result.reason.value)
            return
        if not result.text:
            return
        if not self._header_written:
            self._header_written = True
            header = caption_header(self._caption_format)
            if header:
                self._emit(header.rstrip("\n") + "\n")
        self._sequence_number += 1
        cue = format_cue(
            self._sequence_number,
            result.offset,
            result.end,
            result.text,
            self._caption_format,
            language=result.language if self._show_language else None,
        )
        self._emit(cue.rstrip("\n") + "\n")

    def _caption_text(self, result: RecognitionResult) -> str:
        if self._show_language and result.language:
            return f"[{result.language}] {result.text}"
        return result.text

    def _emit(self, line: str) -> None:
        if self._output is not None:
            self._output.write(line + "\n")
            self._output.flush()
            return
        self._console(line)

    def _console(self, line: str) -> None:
        if self._config.suppress_console_output:
            return
        print(line, file=self._stdout, flush=True)

    def _error(self, line: str) -> None:
        print(line, file=self._stderr, flush=True)
