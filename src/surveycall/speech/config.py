"""
Speech synthesis configuration.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SpeechConfig(BaseSettings):
    """Synthesis provider and audio storage settings from environment."""

    model_config = SettingsConfigDict(
        env_prefix="SPEECH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider
    elevenlabs_api_key: str = Field(default="")
    elevenlabs_api_base: str = Field(default="https://api.elevenlabs.io")
    model_id: str = Field(default="eleven_monolingual_v1")
    stability: float = Field(default=0.5, ge=0.0, le=1.0)
    similarity_boost: float = Field(default=0.7, ge=0.0, le=1.0)

    # Retry / timeouts
    request_timeout_seconds: float = Field(default=10.0, gt=0, le=60)
    max_rate_limit_retries: int = Field(default=2, ge=0, le=5)
    backoff_base_seconds: float = Field(default=1.0, ge=0)
    min_audio_bytes: int = Field(default=100, ge=0)

    # Storage for generated audio, served by the app under audio_url_path
    audio_dir: str = Field(default="var/audio")
    audio_url_path: str = Field(default="/audio")

    @property
    def enabled(self) -> bool:
        return bool(self.elevenlabs_api_key.strip())


def get_speech_config() -> SpeechConfig:
    return SpeechConfig()
