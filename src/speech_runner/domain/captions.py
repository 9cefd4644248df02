from enum import Enum


class CaptionFormat(Enum):
    WEBVTT = "webvtt"
    SRT = "srt"


def format_timestamp(seconds: float, caption_format: CaptionFormat) -> str:
    total_ms = max(0, int(round(seconds * 1000)))
    hours, remainder = divmod(total_ms, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    secs, millis = divmod(remainder, 1000)
    separator = "," if caption_format == CaptionFormat.SRT else "."
    return f"{hours:02d}:{minutes:02d}:{secs:02d}{separator}{millis:03d}"


def caption_header(caption_format: CaptionFormat) -> str:
    if caption_format == CaptionFormat.WEBVTT:
        return "WEBVTT\n\n"
    return ""


def format_timing(start: float, end: float, caption_format: CaptionFormat) -> str:
    return (
        f"{format_timestamp(start, caption_format)} --> "
        f"{format_timestamp(end, caption_format)}"
    )


def format_cue(
    sequence_number: int,
    start: float,
    end: float,
    text: str,
    caption_format: CaptionFormat,
    language: str | None = None,
) -> str:
    timing = format_timing(start, end, caption_format)
    body = f"[{language}] {text}" if language else text
    if caption_format == CaptionFormat.SRT:
        return f"{sequence_number}\n{timing}\n{body}\n\n"
    return f"{timing}\n{body}\n\n"
