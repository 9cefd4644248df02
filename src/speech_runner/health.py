import logging
import os
import wave
from dataclasses import dataclass
from pathlib import Path

import sounddevice as sd

from speech_runner.config import RunnerSettings
from speech_runner.user_config import UserConfig

logger = logging.getLogger(__name__)

CRITICAL_CHECKS = {"subscription_key", "region", "input_file", "wav_format", "output_dir", "audio_device"}


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str


def run_startup_checks(config: UserConfig, settings: RunnerSettings) -> list[HealthCheckResult]:
    results = [
        _check_subscription_key(config),
        _check_region(config),
        _check_output_dir(config),
    ]
    if config.uses_microphone:
        results.append(_check_audio_device(settings.capture_device))
    else:
        results.append(_check_input_file(config))
        if not config.use_compressed_audio:
            results.append(_check_wav_format(config))

    passed = sum(1 for r in results if r.passed)
    logger.info("Health check: %d/%d passed", passed, len(results))
    for result in results:
        level = logging.INFO if result.passed else logging.WARNING
        symbol = "OK" if result.passed else "FAIL"
        logger.log(level, "  [%s] %s: %s", symbol, result.name, result.detail)

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    return any(not r.passed and r.name in CRITICAL_CHECKS for r in results)


def _check_subscription_key(config: UserConfig) -> HealthCheckResult:
    name = "subscription_key"
    key = config.subscription_key.strip()
    detail = f"Loaded (...{key[-4:]})" if len(key) > 4 else "Loaded"
    return HealthCheckResult(name=name, passed=True, detail=detail)


def _check_region(config: UserConfig) -> HealthCheckResult:
    name = "region"
    region = config.region.strip()
    if not region.replace("-", "").isalnum():
        return HealthCheckResult(name=name, passed=False, detail=f"Invalid region '{region}'")
    return HealthCheckResult(name=name, passed=True, detail=region)


def _check_input_file(config: UserConfig) -> HealthCheckResult:
    name = "input_file"
    path = Path(config.input_file_path)
    if not path.is_file():
        return HealthCheckResult(name=name, passed=False, detail=f"{path} does not exist")
    if not os.access(path, os.R_OK):
        return HealthCheckResult(name=name, passed=False, detail=f"{path} is not readable")
    return HealthCheckResult(name=name, passed=True, detail=f"{path} ({path.stat().st_size} bytes)")


def _check_wav_format(config: UserConfig) -> HealthCheckResult:
    name = "wav_format"
    path = config.input_file_path
    try:
        with wave.open(path, "rb") as wav:
            sample_width = wav.getsampwidth()
            rate = wav.getframerate()
            channels = wav.getnchannels()
    except (wave.Error, EOFError, OSError) as exc:
        return HealthCheckResult(name=name, passed=False, detail=f"Not a readable WAV file: {exc}")

    if sample_width != 2:
        return HealthCheckResult(
            name=name, passed=False, detail=f"{sample_width * 8}-bit samples, need 16-bit PCM"
        )
    return HealthCheckResult(name=name, passed=True, detail=f"16-bit PCM, {rate} Hz, {channels} channel(s)")


def _check_output_dir(config: UserConfig) -> HealthCheckResult:
    name = "output_dir"
    if config.output_file_path is None:
        return HealthCheckResult(name=name, passed=True, detail="Writing to console")
    directory = Path(config.output_file_path).resolve().parent
    if not directory.is_dir():
        return HealthCheckResult(name=name, passed=False, detail=f"{directory} does not exist")
    if not os.access(directory, os.W_OK):
        return HealthCheckResult(name=name, passed=False, detail=f"{directory} is not writable")
    return HealthCheckResult(name=name, passed=True, detail=f"Writing to {config.output_file_path}")


def _check_audio_device(capture_device: str) -> HealthCheckResult:
    name = "audio_device"
    try:
        if capture_device:
            for dev in sd.query_devices():
                if capture_device.lower() in dev["name"].lower() and dev["max_input_channels"] > 0:
                    return HealthCheckResult(name=name, passed=True, detail=f"Device '{dev['name']}' found")
        default = sd.query_devices(kind="input")
        detail = f"default input: {default['name']}"
        if capture_device:
            detail = f"'{capture_device}' not in PortAudio (will use PIPEWIRE_NODE), {detail}"
        return HealthCheckResult(name=name, passed=True, detail=detail)
    except sd.PortAudioError as exc:
        return HealthCheckResult(name=name, passed=False, detail=f"No input devices available: {exc}")
