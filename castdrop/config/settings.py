"""
Runtime configuration.

Every value comes from the environment (or a local .env file) and is
validated by pydantic when the process starts, so a bad limit or a
malformed flag stops the service before it accepts an upload.

The upload limits are not read by the media services directly. They are
turned into a ``MediaConfig`` and passed in, which is what lets tests run
the whole flow with byte-sized chunks.
"""

import math
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.media.models import MAX_PARTS, MIB, MediaConfig


class Settings(BaseSettings):
    """
    CastDrop settings. Field names map to upper-case env variables,
    e.g. ``max_age_minutes`` is ``MAX_AGE_MINUTES``.
    """

    api_title: str = "CastDrop API"
    api_version: str = "v1"

    # Bucket
    r2_account_id: str = Field(default="", description="Cloudflare account that owns the bucket")
    r2_access_key_id: str = Field(default="", description="R2 API token access key")
    r2_secret_access_key: str = Field(default="", description="R2 API token secret")
    r2_bucket_name: str = Field(
        default="castdrop",
        description="R2 bucket holding videos and in-flight chunks"
    )
    r2_endpoint_url: Optional[str] = Field(
        default=None,
        description="Explicit S3 endpoint. Derived from the account id when unset."
    )
    r2_mock_mode: bool = Field(
        default=False,
        description="Keep objects in process memory instead of R2 (local runs only)"
    )

    # Upload limits and retention
    max_file_size_mb: int = Field(
        default=1024,
        gt=0,
        description="Largest video accepted, in MB. Checked at init before any chunk is sent."
    )
    chunk_size_mb: int = Field(
        default=80,
        ge=5,
        description="Chunk size in MB. Must match the upload client. Kept well under the "
                    "per-request body limit and at or above the 5MB multipart minimum."
    )
    max_age_minutes: int = Field(
        default=60,
        gt=0,
        description="Retention window. Anything older is deleted by the expiry sweep."
    )
    default_content_type: str = Field(
        default="video/mp4",
        description="Content type used when the client does not send one"
    )
    sweep_interval_minutes: int = Field(
        default=0,
        ge=0,
        description="Run the expiry sweep in-process at this interval. 0 disables it "
                    "(use scripts/sweep_expired.py from cron instead)."
    )

    log_level: str = Field(default="INFO", description="Root logger level name")

    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins. Videos are fetched by "
                    "cast receivers on other origins, so * is the default."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def check_part_count(self) -> "Settings":
        # every planned chunk becomes one multipart part
        if math.ceil(self.max_file_size_mb / self.chunk_size_mb) > MAX_PARTS:
            raise ValueError(
                f"MAX_FILE_SIZE_MB / CHUNK_SIZE_MB exceeds the {MAX_PARTS} part limit"
            )
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        if self.cors_origins.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def r2_endpoint(self) -> str:
        """S3 endpoint for the bucket's account, unless one was given explicitly."""
        return self.r2_endpoint_url or f"https://{self.r2_account_id}.r2.cloudflarestorage.com"

    @property
    def media_config(self) -> MediaConfig:
        """Limits handed to the media services."""
        return MediaConfig(
            max_file_size=self.max_file_size_mb * MIB,
            chunk_size=self.chunk_size_mb * MIB,
            max_age=timedelta(minutes=self.max_age_minutes),
            default_content_type=self.default_content_type,
        )

    def validate_required_fields(self) -> list[str]:
        """
        Names of the env variables still needed to reach the bucket.

        Empty in mock mode. Kept out of pydantic validation so a half
        configured instance can still boot and report itself not ready.
        """
        if self.r2_mock_mode:
            return []

        required = {
            "R2_ACCOUNT_ID or R2_ENDPOINT_URL": self.r2_account_id or self.r2_endpoint_url,
            "R2_ACCESS_KEY_ID": self.r2_access_key_id,
            "R2_SECRET_ACCESS_KEY": self.r2_secret_access_key,
        }
        return [name for name, value in required.items() if not value]


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings. Tests reset with ``get_settings.cache_clear()``."""
    return Settings()
