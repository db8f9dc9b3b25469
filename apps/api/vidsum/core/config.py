"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PLACEHOLDER_BLOB_TOKEN = "your_blob_token_here"


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    provider: Literal["mock", "openai"] = "openai"
    openai_api_key: str | None = None
    transcription_model: str = "whisper-1"
    vision_model: str = "gpt-4o"
    summary_model: str = "gpt-4o"

    storage_dir: str = ".vidsum-storage"
    blob_token: str | None = None
    blob_base_url: str | None = None

    dispatch_mode: Literal["local", "http"] = "local"
    worker_base_url: str = "http://127.0.0.1:8000"
    worker_secret: str | None = None

    max_retries: int = Field(default=3, ge=0)
    retry_delays: list[int] = Field(default_factory=lambda: [30, 120, 300], min_length=1)
    max_frames: int = Field(default=12, ge=1)
    min_frame_interval_ms: int = Field(default=5000, ge=1)
    merge_gap_ms: int = Field(default=2000, ge=0)
    vision_concurrency: int = Field(default=4, ge=1)
    step_timeout_seconds: float = Field(default=600.0, gt=0)
    http_timeout_seconds: float = Field(default=30.0, gt=0)

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="VIDSUM_", extra="ignore")

    @property
    def has_blob_token(self) -> bool:
        token = (self.blob_token or "").strip()
        return bool(token) and token != PLACEHOLDER_BLOB_TOKEN and bool(self.blob_base_url)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
