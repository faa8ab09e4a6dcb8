from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogFormat = Literal["json", "console"]

# Exit status used when the build failed without a usable exit code of its own.
GENERIC_FAILURE_EXIT_CODE = 1

# Same convention as coreutils `timeout`.
TIMEOUT_EXIT_CODE = 124


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ANDROID_BUILD_",
        env_file=".env",
        extra="ignore",
    )

    # Deployment surface
    project_id: str = Field(default="")
    region: str = Field(default="us-central1")
    trigger_name: str = Field(default="android-build-trigger")
    target_bucket: str = Field(default="")
    service_account: str = Field(default="")
    topic_name: str = Field(default="android-build-uploads")

    # Build
    gradle_version: str = Field(default="8.7")
    gradle_distribution_base: str = Field(
        default="https://services.gradle.org/distributions"
    )
    require_single_project_dir: bool = Field(default=False)

    # Notification
    notifications_enabled: bool = Field(default=True)
    webhook_url: str = Field(default="")
    webhook_timeout_s: float = Field(default=30.0, gt=0)
    webhook_max_attempts: int = Field(default=3, ge=1)
    webhook_retry_delay_s: float = Field(default=5.0, ge=0)

    # Storage
    gcs_api_base: str = Field(default="https://storage.googleapis.com")
    gcs_access_token: str = Field(default="")
    gcs_use_metadata_token: bool = Field(default=False)

    # Runtime
    scratch_root: Path = Field(default=Path("_scratch"))
    pipeline_timeout_s: float = Field(default=3600.0, gt=0)
    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default="console")

    @field_validator("webhook_url")
    @classmethod
    def _validate_webhook_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            return ""
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"webhook_url must be an http(s) URL or empty, got {v!r}")
        return v

    @property
    def notifications_active(self) -> bool:
        return self.notifications_enabled and bool(self.webhook_url)

    def to_dict(self) -> dict[str, object]:
        d = self.model_dump(mode="json")
        if d.get("gcs_access_token"):
            d["gcs_access_token"] = "***"
        return d


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return Settings()
