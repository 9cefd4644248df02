import os

import pytest

from speech_runner import __main__ as cli
from speech_runner.config import RunnerSettings
from speech_runner.domain.events import Canceled, SessionStarted, SessionStopped
from speech_runner.domain.results import CancellationDetails, RecognitionResult
from speech_runner.domain.session import RecognitionSession
from speech_runner.user_config import ProfanityOption

from conftest import TEST_KEY, FakeRecognizer, RecordingReporter


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "ENV_FILE_PATH", tmp_path / "env")
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)
    for key in list(os.environ):
        if key.startswith("SPEECH_RUNNER_"):
            monkeypatch.delenv(key)


class TestParser:
    def test_intent_defaults_to_single_shot(self):
        args = cli.build_parser().parse_args(["intent"])
        assert args.command == "intent"
        assert args.continuous is False
        assert args.model == "elevator"

    def test_intent_continuous(self):
        args = cli.build_parser().parse_args(["intent", "--continuous", "--model", "lights.json"])
        assert args.continuous is True
        assert args.model == "lights.json"

    def test_caption_is_continuous_without_model(self):
        args = cli.build_parser().parse_args(["caption", "--srt", "--input", "talk.wav"])
        assert args.continuous is True
        assert args.model is None
        assert args.srt is True

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestBuildConfig:
    def test_flags_override_settings(self):
        args = cli.build_parser().parse_args(
            ["caption", "--key", TEST_KEY, "--region", "eastus", "--profanity", "raw", "--languages", "en-US,de-DE"]
        )
        config = cli.build_config(args, RunnerSettings(api_key="settings-key", region="westus"))
        assert config.subscription_key == TEST_KEY
        assert config.region == "eastus"
        assert config.profanity_option == ProfanityOption.RAW
        assert config.language_id_languages == ("en-US", "de-DE")

    def test_settings_fill_missing_flags(self, tmp_path):
        key_file = tmp_path / "key"
        key_file.write_text(f"{TEST_KEY}\n")
        args = cli.build_parser().parse_args(["intent"])
        config = cli.build_config(args, RunnerSettings(api_key_file=str(key_file), language="de-DE"))
        assert config.subscription_key == TEST_KEY
        assert config.region == "us"
        assert config.language == "de-DE"


class TestEnvFile:
    def test_loads_missing_keys_only(self, tmp_path, monkeypatch):
        env_file = tmp_path / "env"
        env_file.write_text(
            "# speech runner\n"
            "SPEECH_RUNNER_REGION='eastus'\n"
            "SPEECH_RUNNER_MODEL=nova-3\n"
            "garbage line\n"
        )
        monkeypatch.setenv("SPEECH_RUNNER_MODEL", "nova-2")

        try:
            cli._load_env_file(env_file)
            assert os.environ["SPEECH_RUNNER_REGION"] == "eastus"
            assert os.environ["SPEECH_RUNNER_MODEL"] == "nova-2"
        finally:
            os.environ.pop("SPEECH_RUNNER_REGION", None)

    def test_missing_file_is_ignored(self, tmp_path):
        cli._load_env_file(tmp_path / "missing")


class TestMain:
    def test_configuration_error_exits_2(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["intent", "--key", TEST_KEY, "--threshold", "abc"])
        assert exc_info.value.code == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_missing_key_exits_2(self):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["caption"])
        assert exc_info.value.code == 2

    def test_compressed_format_from_microphone_exits_2(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["caption", "--key", TEST_KEY, "--format", "mp3"])
        assert exc_info.value.code == 2
        assert "needs an input file" in capsys.readouterr().err

    def test_unknown_model_exits_2(self):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["intent", "--key", TEST_KEY, "--model", "lobby"])
        assert exc_info.value.code == 2

    def test_failed_health_check_exits_1(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["caption", "--key", TEST_KEY, "--input", str(tmp_path / "missing.wav")])
        assert exc_info.value.code == 1


class TestRunSession:
    @pytest.mark.asyncio
    async def test_single_shot_success(self):
        session = RecognitionSession(FakeRecognizer(result=RecognitionResult.no_match()), RecordingReporter())
        assert await cli._run_session(session, continuous=False) == cli.EXIT_OK

    @pytest.mark.asyncio
    async def test_single_shot_error(self):
        details = CancellationDetails.error("401", "Unauthorized")
        session = RecognitionSession(FakeRecognizer(result=RecognitionResult.canceled(details)), RecordingReporter())
        assert await cli._run_session(session, continuous=False) == cli.EXIT_FAILURE

    @pytest.mark.asyncio
    async def test_continuous_end_of_stream_is_success(self):
        recognizer = FakeRecognizer(
            events=[SessionStarted(), Canceled(details=CancellationDetails.end_of_stream()), SessionStopped()]
        )
        session = RecognitionSession(recognizer, RecordingReporter())
        assert await cli._run_session(session, continuous=True) == cli.EXIT_OK

    @pytest.mark.asyncio
    async def test_continuous_error_fails(self):
        recognizer = FakeRecognizer(
            events=[SessionStarted(), Canceled(details=CancellationDetails.error("1011", "Server error"))]
        )
        session = RecognitionSession(recognizer, RecordingReporter())
        assert await cli._run_session(session, continuous=True) == cli.EXIT_FAILURE
