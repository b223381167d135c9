"""Application configuration utilities."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_NAME = "http-s3"
APP_HOST = "0.0.0.0"
APP_PORT = 3000
APP_IDLE_TIMEOUT = 30
APP_WORKERS = os.cpu_count() or 1


class Settings(BaseSettings):
    """Settings derived from environment variables."""

    s3_endpoint: str | None = Field(default=None, alias="S3_ENDPOINT")
    s3_access_key: str | None = Field(default=None, alias="S3_ACCESS_KEY")
    s3_secret_key: str | None = Field(default=None, alias="S3_SECRET_KEY")
    # Parsed per request by parse_secure_flag.
    s3_secure: str = Field(default="false", alias="S3_SECURE")
    s3_bucket: str | None = Field(default=None, alias="S3_BUCKET")
    s3_region: str = Field(default="us-east-1", alias="S3_REGION")
    scratch_dir: str | None = Field(default=None, alias="SCRATCH_DIR")
    request_timeout: float = Field(default=30.0, alias="REQUEST_TIMEOUT")

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
    )

    def missing_required(self) -> list[str]:
        """Return the env var names that must be set before serving."""

        missing: list[str] = []
        if not self.s3_endpoint:
            missing.append("S3_ENDPOINT")
        if not self.s3_bucket:
            missing.append("S3_BUCKET")
        return missing


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = [
    "APP_HOST",
    "APP_IDLE_TIMEOUT",
    "APP_NAME",
    "APP_PORT",
    "APP_WORKERS",
    "Settings",
    "get_settings",
]
