import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

from speech_runner.config import RunnerSettings
from speech_runner.domain.results import CancellationReason, ResultReason
from speech_runner.domain.session import RecognitionSession
from speech_runner.log_format import configure_logging
from speech_runner.user_config import ConfigurationError, UserConfig, build_user_config

logger = logging.getLogger(__name__)

ENV_FILE_PATH = Path.home() / ".config" / "speech-runner" / "env"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIGURATION = 2


def _load_env_file(path: Path = ENV_FILE_PATH) -> None:
    if not path.exists():
        return
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            value = value.strip("'\"")
            if key not in os.environ:
                os.environ[key] = value


def _add_shared_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--input", help="Audio file to recognize (default: microphone)")
    parser.add_argument("--output", help="Write results to this file instead of the console")
    parser.add_argument(
        "--format",
        help="Compressed input format: any, mp3, ogg, flac, alaw, mulaw, amrnb, amrwb",
    )
    parser.add_argument("--profanity", help="Profanity handling: raw, masked (default) or removed")
    parser.add_argument("--languages", help="Comma separated languages to identify, e.g. en-US,ja-JP")
    parser.add_argument("--phrases", help='Semicolon separated phrase hints, e.g. "Contoso;Jessie"')
    parser.add_argument("--quiet", "-q", action="store_true", help="Only print errors to the console")
    parser.add_argument("--recognizing", action="store_true", help="Print interim results")
    parser.add_argument("--srt", action="store_true", help="SubRip captions instead of WebVTT")
    parser.add_argument("--threshold", help="Stable partial result threshold")
    parser.add_argument("--key", help="Subscription key (default: settings)")
    parser.add_argument("--region", help="Service region (default: settings)")
    parser.add_argument("--language", help="Recognition language (default: settings)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="speech-runner", description="Speech and intent recognition")
    subparsers = parser.add_subparsers(dest="command", required=True)

    intent_parser = subparsers.add_parser("intent", help="Recognize speech and match intents")
    mode = intent_parser.add_mutually_exclusive_group()
    mode.add_argument("--once", dest="continuous", action="store_false", help="Single utterance (default)")
    mode.add_argument("--continuous", dest="continuous", action="store_true", help="Until stopped")
    intent_parser.add_argument(
        "--model", default="elevator", help="Built-in model name or JSON model file (default: elevator)"
    )
    intent_parser.set_defaults(continuous=False)
    _add_shared_arguments(intent_parser)

    caption_parser = subparsers.add_parser("caption", help="Continuous captioning")
    _add_shared_arguments(caption_parser)
    caption_parser.set_defaults(continuous=True, model=None)

    return parser


def build_config(args: argparse.Namespace, settings: RunnerSettings) -> UserConfig:
    return build_user_config(
        compressed_format=args.format,
        profanity=args.profanity,
        languages=args.languages,
        input_file=args.input,
        output_file=args.output,
        phrases=args.phrases,
        quiet=args.quiet,
        show_recognizing=args.recognizing,
        srt=args.srt,
        threshold=args.threshold,
        subscription_key=args.key or settings.resolve_api_key(),
        region=args.region or settings.region,
        language=args.language or settings.language,
    )


def main(argv: list[str] | None = None) -> None:
    _load_env_file(ENV_FILE_PATH)
    args = build_parser().parse_args(argv)
    settings = RunnerSettings()
    configure_logging(verbose=args.verbose, log_file=settings.log_file)

    from speech_runner.factory import create_reporter, create_session, load_language_model
    from speech_runner.health import has_critical_failures, run_startup_checks

    try:
        config = build_config(args, settings)
        language_model = load_language_model(args.model) if args.model else None
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(EXIT_CONFIGURATION)

    results = run_startup_checks(config, settings)
    if has_critical_failures(results):
        logging.error("Critical health check failures, aborting startup")
        sys.exit(EXIT_FAILURE)

    with create_reporter(config, captioning=args.command == "caption") as reporter:
        session = create_session(config, settings, reporter, language_model)
        exit_code = asyncio.run(_run_session(session, continuous=args.continuous))
    sys.exit(exit_code)


async def _run_session(session: RecognitionSession, continuous: bool) -> int:
    if not continuous:
        result = await session.run_single_shot()
        if result.reason == ResultReason.CANCELED and _is_error(result.cancellation):
            return EXIT_FAILURE
        return EXIT_OK

    stop_requests = 0

    def handle_signal() -> None:
        nonlocal stop_requests
        stop_requests += 1
        if stop_requests > 1:
            logging.warning("Forced exit")
            sys.exit(EXIT_FAILURE)
        logging.info("Stopping recognition...")
        session.request_stop()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    try:
        outcome = await session.run_continuous()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    logger.info(
        "Session finished: state=%s stop_reason=%s recognized=%d",
        outcome.state.name,
        outcome.stop_reason.name if outcome.stop_reason else None,
        outcome.recognized_count,
    )
    return EXIT_FAILURE if _is_error(outcome.cancellation) else EXIT_OK


def _is_error(cancellation) -> bool:
    return cancellation is not None and cancellation.reason == CancellationReason.ERROR


if __name__ == "__main__":
    main()
