"""Application configuration using Pydantic BaseSettings."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Reelcast configuration loaded from environment variables."""

    model_config = {"env_prefix": "REELCAST_", "env_file": ".env", "extra": "ignore"}

    # Providers
    default_provider: str = "kling"
    kling_api_key: str = ""
    kling_base_url: str = "https://api.piapi.ai"
    kling_default_version: str = "1.6"
    heygen_api_key: str = ""
    heygen_base_url: str = "https://api.heygen.com"
    http_timeout_seconds: float = 30.0

    # Polling
    poll_interval_seconds: float = 10.0
    poll_max_attempts: int = 60
    heygen_poll_max_attempts: int = 120

    # Redis / Celery
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"
    worker_concurrency: int = 2
    retry_max_attempts: dict[str, int] = {
        "generation": 3,
        "avatar": 3,
        "pipeline": 3,
        "batch": 3,
        "variants": 2,
    }
    retry_base_seconds: dict[str, float] = {
        "generation": 15.0,
        "avatar": 10.0,
        "pipeline": 10.0,
        "batch": 5.0,
        "variants": 15.0,
    }

    # Persistence
    database_url: str = "sqlite:////tmp/reelcast/reelcast.db"

    # Directories
    temp_dir: Path = Path("/tmp/reelcast/temp")
    artifact_dir: Path = Path("/tmp/reelcast/artifacts")
    artifact_base_url: str = "http://localhost:8000/media"
    temp_file_ttl_seconds: int = 3600

    # Batch limits
    max_batch_items: int = 100

    # Rendering
    output_video_codec: str = "libx264"
    output_audio_codec: str = "aac"
    output_crf: int = 23
    output_preset: str = "medium"


def get_settings() -> Settings:
    """Return settings instance."""
    return Settings()
