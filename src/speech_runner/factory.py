import logging
from pathlib import Path

from speech_runner.adapters.deepgram_recognizer import DeepgramRecognizer
from speech_runner.adapters.file_audio import CompressedFileSource, WavFileSource
from speech_runner.adapters.text_reporter import TextReporter
from speech_runner.config import RunnerSettings
from speech_runner.domain.patterns import PatternMatchingModel, load_pattern_model
from speech_runner.domain.session import DEFAULT_PROMPT, RecognitionSession
from speech_runner.ports.audio import AudioSourcePort
from speech_runner.ports.recognizer import RecognizerPort
from speech_runner.sample_models import elevator_model
from speech_runner.user_config import DEFAULT_LANGUAGE, ConfigurationError, UserConfig

logger = logging.getLogger(__name__)

BUILTIN_MODELS = {"elevator": elevator_model}


def create_audio_source(config: UserConfig, settings: RunnerSettings) -> AudioSourcePort:
    if config.input_file_path is None:
        from speech_runner.adapters.sounddevice_audio import SounddeviceCapture

        return SounddeviceCapture(
            device=settings.capture_device,
            sample_rate=settings.sample_rate,
            frame_duration_ms=settings.frame_duration_ms,
        )
    if config.use_compressed_audio:
        return CompressedFileSource(path=config.input_file_path)
    return WavFileSource(
        path=config.input_file_path,
        frame_duration_ms=settings.frame_duration_ms,
        realtime=settings.realtime_file_pacing,
    )


def create_recognizer(
    config: UserConfig, settings: RunnerSettings, audio: AudioSourcePort
) -> RecognizerPort:
    return DeepgramRecognizer(
        api_key=config.subscription_key,
        config=config,
        audio=audio,
        model=settings.model,
        endpointing_ms=settings.endpointing_ms,
        utterance_end_ms=settings.utterance_end_ms,
    )


def create_reporter(config: UserConfig, captioning: bool = False) -> TextReporter:
    return TextReporter(config, captioning=captioning)


def load_language_model(name_or_path: str) -> PatternMatchingModel:
    builder = BUILTIN_MODELS.get(name_or_path)
    if builder is not None:
        return builder()
    path = Path(name_or_path)
    if not path.is_file():
        choices = ", ".join(sorted(BUILTIN_MODELS))
        raise ConfigurationError(
            f"Unknown language model {name_or_path!r}: not a file and not one of {choices}"
        )
    try:
        return load_pattern_model(path)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid language model {path}: {exc}") from exc


def session_prompt(config: UserConfig) -> str:
    if config.language == DEFAULT_LANGUAGE:
        return DEFAULT_PROMPT
    return f"Say something in {config.language}..."


def create_session(
    config: UserConfig,
    settings: RunnerSettings,
    reporter: TextReporter,
    language_model: PatternMatchingModel | None = None,
) -> RecognitionSession:
    audio = create_audio_source(config, settings)
    recognizer = create_recognizer(config, settings, audio)
    if language_model is not None:
        recognizer.apply_language_model(language_model)
    return RecognitionSession(recognizer=recognizer, reporter=reporter, prompt=session_prompt(config))
