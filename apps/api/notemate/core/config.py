"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    auth_provider: Literal["mock", "firebase"] = "firebase"
    firebase_project_id: str | None = None
    firebase_audience: str | None = None
    webhook_secret: str
    webhook_base_url: str = "http://localhost:8000"

    store_backend: Literal["memory", "firestore"] = "memory"

    assemblyai_api_key: str | None = None
    assemblyai_base_url: str = "https://api.assemblyai.com/v2"
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-flash-latest"

    storage_bucket: str | None = None
    storage_endpoint_url: str = "https://s3.filebase.com"
    storage_access_key_id: str | None = None
    storage_secret_access_key: str | None = None
    storage_region: str = "us-east-1"

    max_concurrent_jobs: int = 5
    processor_interval_seconds: float = 60.0
    claim_lease_seconds: int = 900
    http_timeout_seconds: float = 60.0
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="NOTEMATE_", extra="ignore")

    @property
    def webhook_url(self) -> str:
        return f"{self.webhook_base_url.rstrip('/')}/api/v1/webhook/assemblyai"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
