from pydantic_settings import BaseSettings, SettingsConfigDict


class RunnerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SPEECH_RUNNER_")

    api_key: str = ""
    api_key_file: str = ""
    region: str = "us"

    model: str = "nova-2"
    language: str = "en-US"

    sample_rate: int = 16000
    frame_duration_ms: int = 20
    capture_device: str = ""
    realtime_file_pacing: bool = True

    endpointing_ms: int = 300
    utterance_end_ms: int = 1000

    log_file: str = ""

    def read_secret(self, path: str) -> str:
        if not path:
            return ""
        try:
            with open(path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""

    def resolve_api_key(self) -> str:
        return self.api_key or self.read_secret(self.api_key_file)
