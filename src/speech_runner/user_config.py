"""Immutable run parameters for one recognition session."""

from dataclasses import dataclass
from enum import Enum

from speech_runner.domain.captions import CaptionFormat


DEFAULT_LANGUAGE = "en-US"


class ConfigurationError(ValueError):
    """Raised when run parameters are malformed; nothing has been constructed yet."""


class ContainerFormat(Enum):
    ANY = "any"
    MP3 = "mp3"
    OGG_OPUS = "ogg"
    FLAC = "flac"
    ALAW = "alaw"
    MULAW = "mulaw"
    AMRNB = "amrnb"
    AMRWB = "amrwb"


class ProfanityOption(Enum):
    MASKED = "masked"
    REMOVED = "removed"
    RAW = "raw"


@dataclass(frozen=True)
class UserConfig:
    # True for compressed container input; otherwise uncompressed PCM (wav).
    use_compressed_audio: bool
    # Only meaningful when use_compressed_audio is True.
    compressed_audio_format: ContainerFormat
    profanity_option: ProfanityOption
    # Language identification candidates, e.g. ("en-US", "ja-JP").
    language_id_languages: tuple[str, ...] | None
    # None means the default microphone.
    input_file_path: str | None
    # None means the console.
    output_file_path: str | None
    # Phrase hints, e.g. ("Contoso", "Jessie", "Rehaan").
    phrase_list: tuple[str, ...] | None
    # Suppresses everything except errors; overrides show_recognizing_results.
    suppress_console_output: bool
    # Recognizing results always go to the console, never to the output file.
    show_recognizing_results: bool
    use_sub_rip_text_caption_format: bool
    stable_partial_result_threshold: int | None
    subscription_key: str
    region: str
    language: str = DEFAULT_LANGUAGE

    def __post_init__(self) -> None:
        if not self.subscription_key or not self.subscription_key.strip():
            raise ConfigurationError("Subscription key must not be empty")
        if not self.region or not self.region.strip():
            raise ConfigurationError("Region must not be empty")
        if self.stable_partial_result_threshold is not None and self.stable_partial_result_threshold < 1:
            raise ConfigurationError(
                f"Stable partial result threshold must be a positive integer, "
                f"got {self.stable_partial_result_threshold}"
            )
        if self.language_id_languages is not None and not self.language_id_languages:
            raise ConfigurationError("Language identification needs at least one language")
        if self.use_compressed_audio and self.input_file_path is None:
            raise ConfigurationError(
                f"Compressed audio format {self.compressed_audio_format.value!r} needs an input file; "
                f"the microphone only delivers PCM"
            )

    @property
    def effective_container_format(self) -> ContainerFormat | None:
        """Container of the input stream, or None for raw PCM framing."""
        if not self.use_compressed_audio:
            return None
        return self.compressed_audio_format

    @property
    def caption_format(self) -> CaptionFormat:
        if self.use_sub_rip_text_caption_format:
            return CaptionFormat.SRT
        return CaptionFormat.WEBVTT

    @property
    def uses_microphone(self) -> bool:
        return self.input_file_path is None


def parse_threshold(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        threshold = int(value.strip())
    except ValueError:
        raise ConfigurationError(
            f"Stable partial result threshold must contain an integer, got {value!r}"
        ) from None
    if threshold < 1:
        raise ConfigurationError(
            f"Stable partial result threshold must be a positive integer, got {threshold}"
        )
    return threshold


def parse_delimited(value: str | None, delimiter: str, what: str) -> tuple[str, ...] | None:
    if value is None:
        return None
    items = tuple(item.strip() for item in value.split(delimiter))
    if not value.strip() or any(not item for item in items):
        raise ConfigurationError(
            f"Invalid {what} {value!r}: entries must be non-empty and separated by {delimiter!r}"
        )
    return items


def parse_container_format(value: str | None) -> ContainerFormat:
    if value is None:
        return ContainerFormat.ANY
    try:
        return ContainerFormat(value.strip().lower())
    except ValueError:
        choices = ", ".join(f.value for f in ContainerFormat)
        raise ConfigurationError(
            f"Unknown compressed audio format {value!r}, expected one of: {choices}"
        ) from None


def parse_profanity_option(value: str | None) -> ProfanityOption:
    if value is None:
        return ProfanityOption.MASKED
    try:
        return ProfanityOption(value.strip().lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown profanity option {value!r}, expected raw, masked or removed"
        ) from None


def build_user_config(
    *,
    compressed_format: str | None = None,
    profanity: str | None = None,
    languages: str | None = None,
    input_file: str | None = None,
    output_file: str | None = None,
    phrases: str | None = None,
    quiet: bool = False,
    show_recognizing: bool = False,
    srt: bool = False,
    threshold: str | None = None,
    subscription_key: str = "",
    region: str = "",
    language: str = DEFAULT_LANGUAGE,
) -> UserConfig:
    """Parse raw command-line strings into a UserConfig.

    Passing ``compressed_format`` selects compressed input. Language lists are
    comma delimited, phrase lists semicolon delimited.
    """
    return UserConfig(
        compressed_format is not None,
        parse_container_format(compressed_format),
        parse_profanity_option(profanity),
        parse_delimited(languages, ",", "language list"),
        input_file,
        output_file,
        parse_delimited(phrases, ";", "phrase list"),
        quiet,
        show_recognizing,
        srt,
        parse_threshold(threshold),
        subscription_key,
        region,
        language,
    )
